# apps/finance/urls.py

from rest_framework.routers import SimpleRouter

from .views import EstimateViewSet, InvoiceViewSet

app_name = 'finance'

router = SimpleRouter()
router.register(r'estimates', EstimateViewSet, basename='estimate')
router.register(r'invoices', InvoiceViewSet, basename='invoice')

urlpatterns = router.urls

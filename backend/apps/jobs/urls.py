# apps/jobs/urls.py

from rest_framework.routers import SimpleRouter

from .views import JobViewSet

app_name = 'jobs'

router = SimpleRouter()
router.register(r'', JobViewSet, basename='job')

urlpatterns = router.urls

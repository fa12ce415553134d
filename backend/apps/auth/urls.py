# apps/auth/urls.py

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from . import views

app_name = 'auth'

urlpatterns = [
    # JWT Authentication
    path('token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # User
    path('profile/', views.UserProfileView.as_view(), name='profile'),
    path('tenants/', views.UserTenantsView.as_view(), name='user_tenants'),
]

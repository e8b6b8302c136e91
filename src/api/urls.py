"""Main API URL router for /api/v1/."""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from api.v1 import views as v1_views

router = DefaultRouter()
router.register(r'deals', v1_views.DealViewSet, basename='deal')
router.register(r'commitments', v1_views.CommitmentViewSet, basename='commitment')
router.register(r'notifications', v1_views.NotificationViewSet, basename='notification')

urlpatterns = [
    path('', include(router.urls)),
]

"""
Tallyman API URLs.

Include this in your project's urlpatterns:

    path('api/tallyman/', include('tallyman.api.urls')),
"""

from rest_framework.routers import DefaultRouter

from .views import ProductReconciliationViewSet

router = DefaultRouter()
router.register("products", ProductReconciliationViewSet, basename="product")

urlpatterns = router.urls

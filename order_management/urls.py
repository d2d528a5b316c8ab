"""
URL configuration for order_management.

- Admin interface
- Product and order ViewSets under /api/
- Authentication and JWT token endpoints under /api/auth/
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from orders.views import OrderViewSet
from products.views import ProductViewSet

router = DefaultRouter()
router.register(r'products', ProductViewSet, basename='product')
router.register(r'orders', OrderViewSet, basename='order')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include(router.urls)),
    path('api/', include('authentication.urls')),
]

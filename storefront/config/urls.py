"""
URL configuration for the storefront project.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Mayhem Creations Admin Panel"
admin.site.site_title = "Mayhem Creations Admin Portal"
admin.site.index_title = "Storefront Administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('storefront.core.urls')),
    path('api/v1/', include('storefront.catalog.urls')),
    path('api/v1/', include('storefront.customization.urls')),
    path('api/v1/', include('storefront.orders.urls')),
    path('api/v1/', include('storefront.customers.urls')),
    path('api/v1/', include('storefront.support.urls')),
    path('api/v1/', include('storefront.shipping.urls')),
    path('api/v1/', include('storefront.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
    re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
]

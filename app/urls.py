"""
URL configuration for the POS ledger backend.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('sales/', include('sales.urls')),
    path('reports/', include('reports.urls')),
]

"""Root URL configuration.

The drive REST surface lives outside this project; only the Django
admin is routed here.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]

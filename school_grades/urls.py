# school_grades/urls.py - Root URL configuration

from django.contrib import admin
from django.urls import path, include
from django.views.generic import RedirectView

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Authentication URLs
    path('accounts/', include('accounts.urls')),

    # Grade pages and API (the list grid navigates to /calificaciones/<id> and /calificaciones/create)
    path('calificaciones/', include('grades.urls')),

    # Home page goes straight to the grade list
    path('', RedirectView.as_view(pattern_name='grades:list', permanent=False), name='home'),
]

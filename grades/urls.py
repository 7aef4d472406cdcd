# grades/urls.py - Grade URL Configuration

from django.urls import path, include
from django.views.generic import RedirectView
from rest_framework.routers import DefaultRouter
from . import views

# API Router for REST endpoints
router = DefaultRouter()
router.register(r'grades', views.GradeViewSet, basename='grade')

app_name = 'grades'

urlpatterns = [
    # Grade grid
    path('', views.GradeListView.as_view(), name='list'),

    # Fixed routes - MUST come before the parameterized route
    path('create', views.GradeCreateView.as_view(), name='create'),
    path('api/', include(router.urls)),
    path('api', RedirectView.as_view(pattern_name='grades:api-root', permanent=False)),

    # Detail page, /calificaciones/<id>
    path('<str:pk>', views.GradeDetailView.as_view(), name='detail'),
]

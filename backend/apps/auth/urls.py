"""
URL routing for authentication endpoints.
"""

from django.urls import path
from apps.auth import views

app_name = "auth"

urlpatterns = [
    path("login", views.login, name="login"),
    path("logout", views.logout, name="logout"),
]

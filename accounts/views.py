# accounts/views.py - Login/logout for the grade site

from django.contrib.auth.views import LoginView, LogoutView
from django.contrib.auth.forms import AuthenticationForm
from django.contrib import messages
from django.urls import reverse_lazy, reverse
import logging

logger = logging.getLogger(__name__)


class CustomLoginView(LoginView):
    """Email login; everyone lands on the grade list"""
    template_name = 'registration/login.html'
    form_class = AuthenticationForm
    redirect_authenticated_user = True

    def get_success_url(self):
        return self.get_redirect_url() or reverse('grades:list')

    def form_valid(self, form):
        response = super().form_valid(form)
        user = form.get_user()
        logger.info("User %s logged in as %s", user.email, user.role)
        messages.success(self.request, f'Welcome, {user.full_name or user.email}!')
        return response

    def form_invalid(self, form):
        logger.info("Failed login for %s", form.data.get('username', ''))
        messages.error(self.request, 'Invalid email or password.')
        return super().form_invalid(form)


class CustomLogoutView(LogoutView):
    next_page = reverse_lazy('accounts:login')

    def post(self, request, *args, **kwargs):
        if request.user.is_authenticated:
            logger.info("User %s logged out", request.user.email)
        response = super().post(request, *args, **kwargs)
        messages.info(request, 'You have been logged out.')
        return response

from django.urls import path

from apps.simulations.views import close_simulations_view
from apps.contracts.views import check_expired_contracts_view

app_name = 'cron'

urlpatterns = [
    path('close-simulations/', close_simulations_view, name='close-simulations'),
    path('check-expired-contracts/', check_expired_contracts_view, name='check-expired-contracts'),
]

from django.urls import path

from .api import billing_statements_api, purchase_membership_api


app_name = "memberships"

urlpatterns = [
    path("api/memberships/purchase/", purchase_membership_api, name="purchase_membership_api"),
    path("api/billing-statements/", billing_statements_api, name="billing_statements_api"),
]

from django.urls import path

from .views import (
    OrderCancelView,
    OrderDetailView,
    OrdersCollectionView,
    OrdersPingView,
    ValidateCartView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("validate-cart/", ValidateCartView.as_view(), name="validate-cart"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("<uuid:oid>/", OrderDetailView.as_view(), name="orders-detail"),
    path("<uuid:oid>/cancel/", OrderCancelView.as_view(), name="orders-cancel"),
]

from django.urls import path

from .views import ProductStockView

app_name = "catalog"

urlpatterns = [
    path("products/<uuid:pid>/stock/", ProductStockView.as_view(), name="product-stock"),
]

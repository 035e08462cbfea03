"""
URL configuration for the payments app.

Routes:
    - POST new/ - Create payment
    - GET <id>/ - Get payment
    - POST worldpay/<id>/ - Submit card charge
    - GET 3ds/<id>/ - Outstanding 3DS challenge
    - POST 3ds-complete/<id>/ - Issuer 3DS callback

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments import views

app_name = "payments"

urlpatterns = [
    path("new/", views.CreatePaymentView.as_view(), name="create"),
    path("<uuid:payment_id>/", views.PaymentDetailView.as_view(), name="detail"),
    path("worldpay/<uuid:payment_id>/", views.WorldpayChargeView.as_view(), name="worldpay-charge"),
    path("3ds/<uuid:payment_id>/", views.ThreedsChallengeView.as_view(), name="threeds-challenge"),
    path(
        "3ds-complete/<uuid:payment_id>/",
        views.ThreedsCompleteView.as_view(),
        name="threeds-complete",
    ),
]

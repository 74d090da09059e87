from django.urls import path
from .views import LoginView, LogoutView, MeView, InviteEmployeeView
from .views import ClientsCollectionView, ClientsSummaryView, ClientDetailView, ClientStatusView
from .views import ClientPaellasStatusView, ClientTicketView, PaellaStatusView
app_name = "orders"

urlpatterns = [
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("auth/me/", MeView.as_view(), name="me"),
    path("clients/", ClientsCollectionView.as_view(), name="clients-collection"),  # GET list / POST create
    path("clients/summary/", ClientsSummaryView.as_view(), name="clients-summary"),
    path("clients/<str:client_id>/", ClientDetailView.as_view(), name="clients-detail"),
    path("clients/<str:client_id>/status/", ClientStatusView.as_view(), name="clients-status"),
    path("clients/<str:client_id>/paellas/status/", ClientPaellasStatusView.as_view(), name="clients-paellas-status"),
    path("clients/<str:client_id>/ticket/", ClientTicketView.as_view(), name="clients-ticket"),
    path("paellas/<str:paella_id>/status/", PaellaStatusView.as_view(), name="paellas-status"),
    path("admin/invite-employee/", InviteEmployeeView.as_view(), name="invite-employee"),
]

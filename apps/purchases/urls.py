from django.urls import path
from . import views

urlpatterns = [
    # Requests
    path('requests/', views.RequestListCreateView.as_view(), name='request-list-create'),
    path('requests/<uuid:pk>/', views.RequestDetailView.as_view(), name='request-detail'),

    # Approval workflow
    path('requests/<uuid:pk>/approve/', views.ApproveView.as_view(), name='request-approve'),
    path('requests/<uuid:pk>/reject/', views.RejectView.as_view(), name='request-reject'),
    path('requests/<uuid:pk>/resubmit/', views.ResubmitView.as_view(), name='request-resubmit'),

    # Administrative dashboard
    path('pending/', views.PendingRequestsView.as_view(), name='pending-requests'),
    path('search/', views.RequestSearchView.as_view(), name='request-search'),
]

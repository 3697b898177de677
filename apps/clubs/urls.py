from django.urls import path
from . import views

urlpatterns = [
    path('', views.ClubCardListView.as_view(), name='club-cards'),
    path('choices/', views.ClubChoiceListView.as_view(), name='club-choices'),
    path('mine/summary/', views.MyClubSummaryView.as_view(), name='my-club-summary'),
    path('<uuid:pk>/analysis/', views.ClubAnalysisView.as_view(), name='club-analysis'),
]

from rest_framework import generics, permissions
from rest_framework.response import Response
from rest_framework.views import APIView
from django.shortcuts import get_object_or_404
from drf_yasg.utils import swagger_auto_schema

from apps.accounts.permissions import HasCompletedSetup, IsAdministrator

from .models import Club
from .serializers import (
    BudgetUsageSerializer,
    ClubCardSerializer,
    ClubSerializer,
    breakdown_data
)
from . import services


class ClubCardListView(APIView):
    """
    Budget card of every active club (administrative dashboard)
    """
    permission_classes = [IsAdministrator]

    @swagger_auto_schema(
        operation_description="Budget usage of every active club",
        responses={200: ClubCardSerializer(many=True)}
    )
    def get(self, request):
        return Response(ClubCardSerializer(services.club_cards(), many=True).data)


class ClubChoiceListView(generics.ListAPIView):
    """
    Clubs a user can join during first-time setup
    """
    serializer_class = ClubSerializer
    permission_classes = [permissions.IsAuthenticated]
    pagination_class = None

    def get_queryset(self):
        return Club.objects.active().order_by('name')


class ClubAnalysisView(APIView):
    """
    Budget usage with category and monthly breakdown of one club
    """
    permission_classes = [IsAdministrator]

    @swagger_auto_schema(
        operation_description="Budget usage, category and monthly breakdown of a club",
        responses={200: "Club analysis", 404: "Club not found"}
    )
    def get(self, request, pk):
        club = get_object_or_404(Club.objects.active(), pk=pk)

        return Response({
            'club_id': str(club.pk),
            'club_name': club.name,
            'budget': BudgetUsageSerializer(services.budget_usage(club)).data,
            'categories': breakdown_data(services.category_breakdown(club)),
            'monthly': breakdown_data(services.monthly_breakdown(club)),
        })


class MyClubSummaryView(APIView):
    """
    Budget usage of the caller's own club
    """
    permission_classes = [HasCompletedSetup]

    @swagger_auto_schema(
        operation_description="Budget usage of the caller's club",
        responses={200: BudgetUsageSerializer}
    )
    def get(self, request):
        club = request.user.club

        return Response({
            'club_id': str(club.pk),
            'club_name': club.name,
            'budget': BudgetUsageSerializer(services.budget_usage(club)).data,
        })

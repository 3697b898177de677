from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
import logging

from apps.accounts.permissions import HasCompletedSetup, IsAdministrator, IsPortalMember
from apps.core.exceptions import WorkflowError
from apps.core.responses import error_response

from . import services
from .filters import member_history, search_requests
from .models import Request
from .serializers import (
    ApprovalActionSerializer,
    RejectionSerializer,
    RequestDetailSerializer,
    RequestListSerializer,
    RequestWriteSerializer
)

logger = logging.getLogger(__name__)


def detail_response(purchase_request, request, status_code=status.HTTP_200_OK):
    serializer = RequestDetailSerializer(purchase_request, context={'request': request})
    return Response(serializer.data, status=status_code)


class RequestListCreateView(APIView):
    """
    Request history of the caller's club, or submit a new request
    """
    permission_classes = [HasCompletedSetup]

    @swagger_auto_schema(
        operation_description="Recent requests of the caller's club",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, description="Filter by status", type=openapi.TYPE_STRING),
            openapi.Parameter('month_from', openapi.IN_QUERY, description="First month (YYYY-MM)", type=openapi.TYPE_STRING),
            openapi.Parameter('month_to', openapi.IN_QUERY, description="Last month (YYYY-MM)", type=openapi.TYPE_STRING),
            openapi.Parameter('keyword', openapi.IN_QUERY, description="Search in category/reason/applicant", type=openapi.TYPE_STRING),
        ],
        responses={200: RequestListSerializer(many=True)}
    )
    def get(self, request):
        try:
            queryset = member_history(request.user, request.query_params)
            data = RequestListSerializer(queryset, many=True, context={'request': request}).data
        except WorkflowError as exc:
            return error_response(exc)
        return Response(data)

    @swagger_auto_schema(
        operation_description="Submit a new purchase request (JSON, or multipart with a receipt file and items as JSON text)",
        responses={
            201: RequestDetailSerializer,
            400: "Bad Request",
            503: "Storage failure"
        }
    )
    def post(self, request):
        serializer = RequestWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        details, items, receipt = serializer.split()
        try:
            purchase_request = services.create_request(request.user, details, items, receipt)
        except WorkflowError as exc:
            return error_response(exc)

        return detail_response(purchase_request, request, status.HTTP_201_CREATED)


class RequestDetailView(APIView):
    """
    Request detail with items and approval record
    """
    permission_classes = [IsPortalMember]

    @swagger_auto_schema(
        operation_description="Get request details",
        responses={200: RequestDetailSerializer, 403: "Forbidden", 404: "Not found"}
    )
    def get(self, request, pk):
        try:
            purchase_request = services.get_request_for_viewer(pk, request.user)
        except WorkflowError as exc:
            return error_response(exc)
        return detail_response(purchase_request, request)


class ApproveView(APIView):
    """
    Sign a request as one of the five approver roles
    """
    permission_classes = [IsPortalMember]

    @swagger_auto_schema(
        operation_description="Record one role's approval",
        request_body=ApprovalActionSerializer,
        responses={
            200: RequestDetailSerializer,
            400: "Bad Request",
            404: "Not found",
            409: "Already approved or invalid status"
        }
    )
    def post(self, request, pk):
        serializer = ApprovalActionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        logger.info(f"Approval attempt: user {request.user.username} as {serializer.validated_data['role']} on {pk}")
        try:
            purchase_request = services.approve_as_role(
                pk,
                request.user,
                serializer.validated_data['role'],
                serializer.validated_data['approver_name']
            )
        except WorkflowError as exc:
            return error_response(exc)

        return detail_response(purchase_request, request)


class RejectView(APIView):
    """
    Return a request to its owner with a reason
    """
    permission_classes = [IsPortalMember]

    @swagger_auto_schema(
        operation_description="Reject a request",
        request_body=RejectionSerializer,
        responses={
            200: RequestDetailSerializer,
            400: "Bad Request",
            404: "Not found",
            409: "Invalid status"
        }
    )
    def post(self, request, pk):
        serializer = RejectionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            purchase_request = services.reject_with_reason(
                pk,
                request.user,
                serializer.validated_data['reason'],
                serializer.validated_data['rejector_name']
            )
        except WorkflowError as exc:
            return error_response(exc)

        return detail_response(purchase_request, request)


class ResubmitView(APIView):
    """
    Edit a rejected request and send it back for approval (owner only)
    """
    permission_classes = [IsPortalMember]

    @swagger_auto_schema(
        operation_description="Edit and resubmit a rejected request (JSON, or multipart with a receipt file and items as JSON text)",
        responses={
            200: RequestDetailSerializer,
            400: "Bad Request",
            403: "Forbidden",
            404: "Not found",
            409: "Invalid status",
            503: "Storage failure"
        }
    )
    def post(self, request, pk):
        serializer = RequestWriteSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        details, items, receipt = serializer.split()
        try:
            purchase_request = services.resubmit_request(pk, request.user, details, items, receipt)
        except WorkflowError as exc:
            return error_response(exc)

        return detail_response(purchase_request, request)


class PendingRequestsView(APIView):
    """
    Requests waiting for approval across all clubs (administrative dashboard)
    """
    permission_classes = [IsAdministrator]

    @swagger_auto_schema(
        operation_description="Submitted requests across all clubs",
        responses={200: RequestListSerializer(many=True)}
    )
    def get(self, request):
        queryset = search_requests({'status': Request.Status.SUBMITTED})
        return Response(RequestListSerializer(queryset, many=True, context={'request': request}).data)


class RequestSearchView(APIView):
    """
    Cross-club request search (administrative dashboard)
    """
    permission_classes = [IsAdministrator]

    @swagger_auto_schema(
        operation_description="Search requests across all clubs",
        manual_parameters=[
            openapi.Parameter('club', openapi.IN_QUERY, description="Club id", type=openapi.TYPE_STRING),
            openapi.Parameter('status', openapi.IN_QUERY, description="Filter by status", type=openapi.TYPE_STRING),
            openapi.Parameter('month', openapi.IN_QUERY, description="Month (YYYY-MM)", type=openapi.TYPE_STRING),
            openapi.Parameter('keyword', openapi.IN_QUERY, description="Search in category/reason/applicant/club", type=openapi.TYPE_STRING),
        ],
        responses={200: RequestListSerializer(many=True)}
    )
    def get(self, request):
        try:
            queryset = search_requests(request.query_params)
            data = RequestListSerializer(queryset, many=True, context={'request': request}).data
        except WorkflowError as exc:
            return error_response(exc)
        return Response(data)

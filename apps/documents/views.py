from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny
from django.core import signing
from django.http import FileResponse
from drf_yasg.utils import swagger_auto_schema
import logging
import mimetypes
import os

from apps.accounts.permissions import IsPortalMember
from apps.core.exceptions import WorkflowError
from apps.core.responses import error_response
from apps.purchases.services import get_request_for_viewer

from .services import receipt_storage
from .services.approval_slip import build_approval_slip

logger = logging.getLogger(__name__)


class ApprovalSlipView(APIView):
    """Printable approval slip (購入申請書) of one request"""
    permission_classes = [IsPortalMember]

    @swagger_auto_schema(
        operation_description="Approval slip data of a request",
        responses={200: "Slip data", 403: "Forbidden", 404: "Not found"}
    )
    def get(self, request, pk):
        try:
            purchase_request = get_request_for_viewer(pk, request.user)
        except WorkflowError as exc:
            return error_response(exc)
        return Response(build_approval_slip(purchase_request, request))


class ReceiptDownloadView(APIView):
    """Serve a receipt through a signed, short-lived token"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, token):
        try:
            path = receipt_storage.unsign(token)
        except signing.SignatureExpired:
            logger.info("Expired receipt link used")
            return Response({'error': 'リンクの有効期限が切れています。', 'code': 'link_expired'}, status=403)
        except signing.BadSignature:
            logger.warning("Tampered receipt link rejected")
            return Response({'error': 'リンクが不正です。', 'code': 'bad_signature'}, status=403)

        if not receipt_storage.exists(path):
            logger.warning(f"Receipt not found: {path}")
            return Response({'error': '領収書が見つかりません。', 'code': 'not_found'}, status=404)

        file_name = os.path.basename(path)
        content_type = mimetypes.guess_type(file_name)[0] or 'application/octet-stream'
        return FileResponse(
            receipt_storage.open(path),
            content_type=content_type,
            filename=file_name
        )

from rest_framework import serializers

from apps.documents.services import receipt_storage

from .models import Request, RequestItem
from .workflow import format_yen


class RequestItemSerializer(serializers.ModelSerializer):
    """
    Serializer for request items
    """
    amount_display = serializers.SerializerMethodField()

    class Meta:
        model = RequestItem
        fields = [
            'id', 'item_name', 'quantity', 'unit_price', 'amount',
            'amount_display', 'sort_order'
        ]

    def get_amount_display(self, obj):
        return format_yen(obj.amount)


class RequestListSerializer(serializers.ModelSerializer):
    """
    Simplified serializer for request lists
    """
    club_name = serializers.CharField(source='club.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    total_amount_display = serializers.SerializerMethodField()
    approval_count = serializers.SerializerMethodField()

    class Meta:
        model = Request
        fields = [
            'id', 'club', 'club_name', 'user', 'date', 'job_title',
            'applicant_name', 'category', 'reason', 'payee',
            'total_amount', 'total_amount_display', 'status', 'status_display',
            'revision_number', 'approval_count', 'created_at', 'updated_at'
        ]

    def get_total_amount_display(self, obj):
        return format_yen(obj.total_amount)

    def get_approval_count(self, obj):
        # List querysets annotate the count; a single detail falls back to a query
        annotated = getattr(obj, 'approval_total', None)
        if annotated is not None:
            return annotated
        return obj.approvals.count()


class RequestDetailSerializer(RequestListSerializer):
    """
    Detailed serializer for a request: items, approval record, receipt link
    """
    items = RequestItemSerializer(many=True, read_only=True)
    approval_flow = serializers.ReadOnlyField()
    pending_roles = serializers.SerializerMethodField()
    receipt_url = serializers.SerializerMethodField()
    can_resubmit = serializers.SerializerMethodField()

    class Meta(RequestListSerializer.Meta):
        fields = RequestListSerializer.Meta.fields + [
            'rejection_reason', 'receipt_path', 'receipt_url',
            'items', 'approval_flow', 'pending_roles', 'can_resubmit'
        ]

    def get_pending_roles(self, obj):
        return obj.pending_roles()

    def get_receipt_url(self, obj):
        return receipt_storage.signed_url(obj.receipt_path, self.context.get('request'))

    def get_can_resubmit(self, obj):
        request = self.context.get('request')
        if not request or not request.user:
            return False
        return obj.user_id == request.user.pk and obj.can_be_resubmitted


class ItemsField(serializers.Field):
    """
    Line items as sent by the client: a list of rows, or its JSON text when
    the request is a multipart form. Row checks happen in the workflow.
    """

    def to_internal_value(self, data):
        return data

    def to_representation(self, value):
        return value


class RequestWriteSerializer(serializers.Serializer):
    """
    Input of create and resubmit. Only supplied keys end up in
    ``validated_data``.
    """
    date = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    job_title = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    applicant_name = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    category = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    payee = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    items = ItemsField(required=False)
    receipt = serializers.FileField(required=False, allow_null=True)

    def split(self):
        """(details, items, receipt) for the lifecycle services"""
        data = dict(self.validated_data)
        items = data.pop('items', None)
        receipt = data.pop('receipt', None)
        return data, items, receipt


class ApprovalActionSerializer(serializers.Serializer):
    """
    Sign a request as one of the fixed roles
    """
    role = serializers.CharField()
    approver_name = serializers.CharField(required=False, allow_blank=True, default='')


class RejectionSerializer(serializers.Serializer):
    """
    Return a request to its owner
    """
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    rejector_name = serializers.CharField(required=False, allow_blank=True, default='')

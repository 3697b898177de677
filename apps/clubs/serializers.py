from rest_framework import serializers

from apps.purchases.workflow import format_yen

from .models import Club


class ClubSerializer(serializers.ModelSerializer):
    """
    Club choices offered during first-time setup
    """

    class Meta:
        model = Club
        fields = ['id', 'name']


class BudgetUsageSerializer(serializers.Serializer):
    """
    Budget usage figures with their yen display strings
    """
    total_budget = serializers.IntegerField()
    spent = serializers.IntegerField()
    remaining = serializers.IntegerField()
    usage_ratio = serializers.FloatField()
    usage_percent = serializers.FloatField()
    usage_percent_display = serializers.FloatField()
    usage_level = serializers.CharField()
    is_over_budget = serializers.BooleanField()
    total_budget_display = serializers.SerializerMethodField()
    spent_display = serializers.SerializerMethodField()
    remaining_display = serializers.SerializerMethodField()

    def get_total_budget_display(self, obj):
        return format_yen(obj['total_budget'])

    def get_spent_display(self, obj):
        return format_yen(obj['spent'])

    def get_remaining_display(self, obj):
        return format_yen(obj['remaining'])


class ClubCardSerializer(BudgetUsageSerializer):
    club_id = serializers.CharField()
    club_name = serializers.CharField()


class BreakdownEntrySerializer(serializers.Serializer):
    label = serializers.CharField()
    amount = serializers.IntegerField()
    amount_display = serializers.SerializerMethodField()

    def get_amount_display(self, obj):
        return format_yen(obj['amount'])


def breakdown_data(pairs):
    return BreakdownEntrySerializer(
        [{'label': label, 'amount': amount} for label, amount in pairs],
        many=True
    ).data

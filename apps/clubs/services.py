"""
Budget aggregation over a club's requests.

Only non-deleted requests in a spent status (approved, paid) count against
a budget. Amounts come back as integer yen.
"""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce

from apps.purchases.models import Request
from apps.purchases.workflow import month_key

from .models import Club

UNCATEGORIZED_LABEL = 'その他'
WARNING_PERCENT = Decimal('80')
FULL_PERCENT = Decimal('100')


def to_yen(amount):
    return int(Decimal(amount or 0).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def usage_figures(total_budget, spent):
    """
    Usage numbers for a budget/spent pair.

    The display percent is capped at 100 while ``remaining`` is allowed to go
    negative. A zero budget reports zero usage.
    """
    total_budget = Decimal(total_budget or 0)
    spent = Decimal(spent or 0)

    if total_budget > 0:
        ratio = spent / total_budget
    else:
        ratio = Decimal('0')
    percent = (ratio * 100).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)

    if percent >= FULL_PERCENT:
        level = 'over'
    elif percent >= WARNING_PERCENT:
        level = 'warning'
    else:
        level = 'normal'

    return {
        'total_budget': to_yen(total_budget),
        'spent': to_yen(spent),
        'remaining': to_yen(total_budget - spent),
        'usage_ratio': float(ratio),
        'usage_percent': float(percent),
        'usage_percent_display': float(min(percent, FULL_PERCENT)),
        'usage_level': level,
        'is_over_budget': spent > total_budget,
    }


def club_spent(club):
    return Request.objects.spent().filter(club=club).aggregate(
        total=Coalesce(Sum('total_amount'), Value(Decimal('0')), output_field=DecimalField())
    )['total']


def budget_usage(club):
    return usage_figures(club.total_budget, club_spent(club))


def category_breakdown(club):
    """[(category, yen)] sorted by amount, largest first; blank -> その他"""
    totals = {}
    rows = (
        Request.objects.spent()
        .filter(club=club)
        .values('category')
        .annotate(total=Sum('total_amount'))
    )
    for row in rows:
        category = (row['category'] or '').strip() or UNCATEGORIZED_LABEL
        totals[category] = totals.get(category, Decimal('0')) + (row['total'] or Decimal('0'))

    ordered = sorted(totals.items(), key=lambda pair: (-pair[1], pair[0]))
    return [(category, to_yen(amount)) for category, amount in ordered]


def monthly_breakdown(club):
    """[(YYYY-MM, yen)] in month order, bucketed by request date or creation"""
    totals = {}
    rows = Request.objects.spent().filter(club=club).values_list('date', 'created_at', 'total_amount')
    for date_value, created_at, amount in rows:
        key = month_key(date_value, created_at)
        if key is None:
            continue
        totals[key] = totals.get(key, Decimal('0')) + (amount or Decimal('0'))

    return [(key, to_yen(totals[key])) for key in sorted(totals)]


def club_cards():
    """
    Budget card per active club, sorted by name.

    Spent amounts come from one grouped query; clubs are keyed by id so a
    club never shows up twice.
    """
    spent_filter = Q(
        requests__deleted_at__isnull=True,
        requests__status__in=Request.SPENT_STATUSES
    )
    clubs = (
        Club.objects.active()
        .annotate(spent=Coalesce(
            Sum('requests__total_amount', filter=spent_filter),
            Value(Decimal('0')),
            output_field=DecimalField()
        ))
        .order_by('name', 'id')
    )

    cards = OrderedDict()
    for club in clubs:
        if club.pk in cards:
            continue
        card = {'club_id': str(club.pk), 'club_name': club.name}
        card.update(usage_figures(club.total_budget, club.spent))
        cards[club.pk] = card
    return list(cards.values())

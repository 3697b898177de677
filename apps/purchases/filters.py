"""
Query filters for the administrator search and the member history list.
"""
from datetime import date
import re
import uuid

from django.conf import settings
from django.db.models import Count, Q

from apps.core.exceptions import ValidationError

from .models import Request

MONTH_PATTERN = re.compile(r'^(\d{4})-(\d{2})$')


def parse_month(value):
    """'YYYY-MM' -> first day of that month, blank -> None"""
    value = (value or '').strip()
    if not value:
        return None
    match = MONTH_PATTERN.match(value)
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationError('月は YYYY-MM 形式で指定してください。')
    return date(int(match.group(1)), int(match.group(2)), 1)


def next_month(first_day):
    if first_day.month == 12:
        return date(first_day.year + 1, 1, 1)
    return date(first_day.year, first_day.month + 1, 1)


def _month_q(first_day):
    """The request date falls in the month, or the request was created in it"""
    return (
        Q(date__year=first_day.year, date__month=first_day.month)
        | Q(created_at__year=first_day.year, created_at__month=first_day.month)
    )


def _keyword_q(keyword, fields):
    query = Q()
    for field in fields:
        query |= Q(**{f'{field}__icontains': keyword})
    return query


def _apply_status(queryset, status):
    status = (status or '').strip()
    if not status:
        return queryset
    if status not in Request.Status.values:
        raise ValidationError('ステータスの指定が不正です。')
    return queryset.filter(status=status)


def search_requests(params, limit=None):
    """
    Cross-club request search for administrators.

    Supported params: ``club``, ``status``, ``month`` (YYYY-MM) and
    ``keyword`` (category, reason, applicant name or club name).
    """
    if limit is None:
        limit = getattr(settings, 'SEARCH_RESULT_LIMIT', 500)

    queryset = Request.objects.active().select_related('club', 'user').annotate(approval_total=Count('approvals'))

    club = (params.get('club') or '').strip()
    if club:
        try:
            queryset = queryset.filter(club_id=uuid.UUID(club))
        except ValueError:
            raise ValidationError('部活動の指定が不正です。')

    queryset = _apply_status(queryset, params.get('status'))

    month = parse_month(params.get('month'))
    if month is not None:
        queryset = queryset.filter(_month_q(month))

    keyword = (params.get('keyword') or '').strip()
    if keyword:
        queryset = queryset.filter(_keyword_q(
            keyword,
            ['category', 'reason', 'applicant_name', 'club__name']
        ))

    return queryset.order_by('-created_at')[:limit]


def member_history(member, params, limit=None):
    """
    Recent requests of the member's club.

    Supported params: ``status``, ``month_from``/``month_to`` (inclusive,
    bucketed by request date, or creation date when the request has none)
    and ``keyword`` (category, reason, applicant name).
    """
    if limit is None:
        limit = getattr(settings, 'HISTORY_RESULT_LIMIT', 50)

    queryset = (
        Request.objects.active()
        .filter(club_id=member.club_id)
        .select_related('club', 'user')
        .annotate(approval_total=Count('approvals'))
    )
    queryset = _apply_status(queryset, params.get('status'))

    month_from = parse_month(params.get('month_from'))
    if month_from is not None:
        queryset = queryset.filter(
            Q(date__gte=month_from)
            | Q(date__isnull=True, created_at__date__gte=month_from)
        )

    month_to = parse_month(params.get('month_to'))
    if month_to is not None:
        end = next_month(month_to)
        queryset = queryset.filter(
            Q(date__lt=end)
            | Q(date__isnull=True, created_at__date__lt=end)
        )

    keyword = (params.get('keyword') or '').strip()
    if keyword:
        queryset = queryset.filter(_keyword_q(keyword, ['category', 'reason', 'applicant_name']))

    return queryset.order_by('-created_at')[:limit]

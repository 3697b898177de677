"""
予算集計のテスト

- 使用額・残額・使用率（承認済み・支払済みのみ計上）
- 科目別・月別の内訳
- 全部活動の予算カード
"""
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.clubs import services
from apps.clubs.models import Club
from apps.purchases.models import Request


def make_request(club, user, amount, status=Request.Status.APPROVED, category='備品', request_date=date(2025, 4, 1)):
    return Request.objects.create(
        club=club,
        user=user,
        date=request_date,
        job_title='主将',
        applicant_name='山田 太郎',
        category=category,
        total_amount=Decimal(amount),
        status=status,
    )


@pytest.mark.django_db
class TestBudgetUsage:
    """予算使用状況"""

    def test_only_approved_and_paid_count(self, club, member):
        make_request(club, member, '30000', Request.Status.APPROVED)
        make_request(club, member, '20000', Request.Status.PAID)
        make_request(club, member, '5000', Request.Status.SUBMITTED)
        make_request(club, member, '7000', Request.Status.REJECTED)
        deleted = make_request(club, member, '9000', Request.Status.APPROVED)
        deleted.deleted_at = timezone.now()
        deleted.save()

        usage = services.budget_usage(club)

        assert usage['total_budget'] == 100000
        assert usage['spent'] == 50000
        assert usage['remaining'] == 50000
        assert usage['usage_ratio'] == 0.5
        assert usage['usage_percent_display'] == 50.0
        assert usage['usage_level'] == 'normal'
        assert usage['is_over_budget'] is False

    def test_over_budget_caps_display_percent(self, club, member):
        make_request(club, member, '120000')

        usage = services.budget_usage(club)

        assert usage['remaining'] == -20000
        assert usage['usage_percent'] == 120.0
        assert usage['usage_percent_display'] == 100.0
        assert usage['usage_level'] == 'over'
        assert usage['is_over_budget'] is True

    def test_warning_level(self, club, member):
        make_request(club, member, '85000')
        assert services.budget_usage(club)['usage_level'] == 'warning'

    def test_zero_budget(self, member):
        club = Club.objects.create(name='写真部', total_budget=0)
        member.club = club
        member.save()
        make_request(club, member, '1000')

        usage = services.budget_usage(club)

        assert usage['usage_ratio'] == 0.0
        assert usage['usage_percent_display'] == 0.0
        assert usage['remaining'] == -1000

    def test_other_clubs_are_not_counted(self, club, member, other_club, outsider):
        make_request(other_club, outsider, '40000')
        assert services.budget_usage(club)['spent'] == 0


@pytest.mark.django_db
class TestBreakdowns:
    """科目別・月別の内訳"""

    def test_category_breakdown_sorted_by_amount(self, club, member):
        make_request(club, member, '1000', category='備品')
        make_request(club, member, '3000', category='遠征費')
        make_request(club, member, '500', category='')
        make_request(club, member, '700', category='  ')
        make_request(club, member, '2500', category='備品')
        make_request(club, member, '9999', Request.Status.SUBMITTED, category='消耗品')

        assert services.category_breakdown(club) == [
            ('備品', 3500),
            ('遠征費', 3000),
            ('その他', 1200),
        ]

    def test_monthly_breakdown_uses_date_then_created_at(self, club, member):
        make_request(club, member, '1000', request_date=date(2025, 4, 10))
        make_request(club, member, '2000', request_date=date(2025, 4, 20))
        make_request(club, member, '3000', request_date=date(2025, 6, 1))
        undated = make_request(club, member, '4000', request_date=None)
        Request.objects.filter(pk=undated.pk).update(
            created_at=datetime(2025, 5, 10, 3, 0, tzinfo=dt_timezone.utc)
        )

        assert services.monthly_breakdown(club) == [
            ('2025-04', 3000),
            ('2025-05', 4000),
            ('2025-06', 3000),
        ]

    def test_empty_club(self, club):
        assert services.category_breakdown(club) == []
        assert services.monthly_breakdown(club) == []


@pytest.mark.django_db
class TestClubCards:
    """全部活動の予算カード"""

    def test_one_card_per_active_club_sorted_by_name(self, club, member, other_club, outsider):
        make_request(club, member, '10000')
        make_request(club, member, '5000')
        make_request(other_club, outsider, '60000')
        Club.objects.create(name='廃部', total_budget=1000, deleted_at=timezone.now())

        cards = services.club_cards()

        assert [card['club_name'] for card in cards] == sorted([club.name, other_club.name])
        by_name = {card['club_name']: card for card in cards}
        assert by_name['サッカー部']['spent'] == 15000
        assert by_name['吹奏楽部']['spent'] == 60000
        assert by_name['吹奏楽部']['is_over_budget'] is True
        assert by_name['吹奏楽部']['usage_percent_display'] == 100.0

    def test_club_without_requests(self, club):
        cards = services.club_cards()
        assert cards[0]['spent'] == 0
        assert cards[0]['remaining'] == 100000

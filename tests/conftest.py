"""
共通フィクスチャ

部活動・ユーザー・申請の作成ヘルパーと、認証済み APIClient を提供する。
領収書は tmp_path 配下の MEDIA_ROOT に保存される。
"""
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from apps.accounts.models import User
from apps.clubs.models import Club
from apps.purchases import services
from apps.purchases.workflow import APPROVAL_ROLES


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    """領収書の保存先をテストごとの一時ディレクトリにする"""
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    return settings.MEDIA_ROOT


@pytest.fixture
def club(db):
    return Club.objects.create(name='サッカー部', total_budget=Decimal('100000'))


@pytest.fixture
def other_club(db):
    return Club.objects.create(name='吹奏楽部', total_budget=Decimal('50000'))


def _make_user(username, club=None, role=User.Role.MEMBER, display_name=''):
    return User.objects.create_user(
        username=username,
        password='pass-1234-word',
        email=f'{username}@example.com',
        club=club,
        role=role,
        display_name=display_name,
    )


@pytest.fixture
def member(club):
    return _make_user('yamada', club=club, display_name='山田 太郎')


@pytest.fixture
def teammate(club):
    return _make_user('suzuki', club=club, display_name='鈴木 花子')


@pytest.fixture
def outsider(other_club):
    return _make_user('tanaka', club=other_club, display_name='田中 一郎')


@pytest.fixture
def admin_user(club):
    return _make_user('kanri', club=club, role=User.Role.ADMIN, display_name='管理 次郎')


@pytest.fixture
def new_user(db):
    """初期設定前のユーザー"""
    return _make_user('newbie')


@pytest.fixture
def request_details():
    return {
        'date': '2025-04-01',
        'job_title': '主将',
        'applicant_name': '山田 太郎',
        'category': '備品',
        'reason': '練習用ボールの補充',
        'payee': 'スポーツ用品店',
    }


@pytest.fixture
def ball_items():
    return [{'item_name': 'ボール', 'quantity': 3, 'unit_price': 500}]


@pytest.fixture
def submitted_request(member, request_details, ball_items):
    return services.create_request(member, request_details, ball_items)


@pytest.fixture
def approve_all():
    """5役職すべてで承認する"""
    def _approve(purchase_request, user, roles=APPROVAL_ROLES):
        result = purchase_request
        for role in roles:
            result = services.approve_as_role(purchase_request.pk, user, role, f'{role}担当')
        return result
    return _approve


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    """指定ユーザーで認証済みの APIClient を返す"""
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction

from apps.clubs.models import Club
from apps.core.exceptions import AuthError, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)


def resolve_member(user):
    """
    Map the authenticated principal to its portal user record.

    Anonymous, inactive and soft-deleted users are rejected with AuthError.
    """
    if user is None or not getattr(user, 'is_authenticated', False):
        raise AuthError()
    if not user.is_active or user.deleted_at is not None:
        logger.warning(f"Rejected principal {user.pk}: inactive or deleted")
        raise AuthError('ユーザー情報が見つかりません。')
    return user


def caller_name(member):
    """Name used when an approver or rejector does not type one"""
    return (member.full_name or member.username or '').strip()


def _parse_budget(value):
    try:
        budget = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError('有効な予算額を入力してください。')
    if budget < 0:
        raise ValidationError('有効な予算額を入力してください。')
    return budget


def setup_club(user, last_name, first_name, club_id=None, club_name=None, total_budget=None):
    """
    First-time setup: join an existing club or register a new one.

    A user who already belongs to a club only gets the display name
    updated. Registering a new club makes the user its admin.
    """
    member = resolve_member(user)

    last_name = (last_name or '').strip()
    first_name = (first_name or '').strip()
    if not last_name or not first_name:
        raise ValidationError('姓と名を入力してください。')
    display_name = f'{last_name} {first_name}'

    try:
        with transaction.atomic():
            if member.has_completed_setup():
                member.display_name = display_name
                member.save(update_fields=['display_name', 'updated_at'])
                logger.info(f"User {member.username} already set up, display name updated")
                return member

            if club_id:
                try:
                    club = Club.objects.active().get(pk=club_id)
                except (Club.DoesNotExist, DjangoValidationError, ValueError):
                    raise NotFoundError('部活動が見つかりません。')
            else:
                club_name = (club_name or '').strip()
                if not club_name:
                    raise ValidationError('部活動名を入力してください。')
                club = Club.objects.create(name=club_name, total_budget=_parse_budget(total_budget))
                member.role = member.Role.ADMIN
                logger.info(f"Club {club.pk} ({club.name}) registered by {member.username}")

            member.club = club
            member.last_name = last_name
            member.first_name = first_name
            member.display_name = display_name
            member.save()
    except DatabaseError:
        logger.error(f"setup_club failed for user {member.pk}", exc_info=True)
        raise StorageError('setup_club')

    logger.info(f"User {member.username} joined club {club.pk}")
    return member

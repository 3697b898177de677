import logging
import re
import time

from django.conf import settings
from django.core import signing
from django.core.files.storage import default_storage
from django.urls import reverse
from PIL import Image, UnidentifiedImageError

from apps.core.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

SIGNING_SALT = 'documents.receipt'
UNSAFE_NAME_CHARS = re.compile(r'[^a-zA-Z0-9._-]')
IMAGE_TYPES = ('image/jpeg', 'image/jpg', 'image/png')


class ReceiptStorage:
    """
    Blob store for uploaded receipts.

    Files live under ``{club_id}/{timestamp}_{safe_name}`` in the configured
    Django storage; retrieval goes through short-lived signed URLs.
    """

    def __init__(self, storage=None):
        self._storage = storage

    @property
    def storage(self):
        return self._storage or default_storage

    @property
    def max_size(self):
        return getattr(settings, 'RECEIPT_MAX_SIZE', 10485760)

    @property
    def allowed_types(self):
        return getattr(
            settings,
            'RECEIPT_ALLOWED_TYPES',
            ['application/pdf', 'image/jpeg', 'image/png', 'image/jpg']
        )

    @property
    def url_max_age(self):
        return getattr(settings, 'RECEIPT_URL_MAX_AGE', 3600)

    def validate(self, uploaded_file):
        """Check type, size and that images actually decode"""
        content_type = getattr(uploaded_file, 'content_type', None)
        if content_type not in self.allowed_types:
            raise ValidationError('領収書はPDF・JPEG・PNGのみアップロードできます。')

        if uploaded_file.size > self.max_size:
            raise ValidationError(
                f'領収書のファイルサイズが上限（{self.max_size // (1024 * 1024)}MB）を超えています。'
            )

        if content_type in IMAGE_TYPES:
            try:
                uploaded_file.seek(0)
                with Image.open(uploaded_file) as image:
                    image.verify()
            except (UnidentifiedImageError, OSError, SyntaxError):
                raise ValidationError('領収書の画像ファイルを読み込めません。')
            finally:
                uploaded_file.seek(0)

    @staticmethod
    def safe_name(file_name):
        return UNSAFE_NAME_CHARS.sub('_', file_name or 'receipt')

    def build_path(self, club_id, file_name):
        timestamp = int(time.time() * 1000)
        return f'{club_id}/{timestamp}_{self.safe_name(file_name)}'

    def save(self, club_id, uploaded_file):
        """Store a receipt and return its path. Nothing is written on failure."""
        self.validate(uploaded_file)
        path = self.build_path(club_id, uploaded_file.name)

        try:
            stored_path = self.storage.save(path, uploaded_file)
        except Exception:
            logger.error(f"Receipt upload failed for club {club_id} ({path})", exc_info=True)
            raise StorageError('receipt_upload')

        logger.info(f"Receipt stored: {stored_path}")
        return stored_path

    def delete(self, path):
        """Best-effort removal of an orphaned upload"""
        if not path:
            return
        try:
            self.storage.delete(path)
            logger.info(f"Receipt removed: {path}")
        except Exception:
            logger.error(f"Could not remove receipt {path}", exc_info=True)

    def exists(self, path):
        return bool(path) and self.storage.exists(path)

    def open(self, path):
        return self.storage.open(path, 'rb')

    def sign(self, path):
        return signing.TimestampSigner(salt=SIGNING_SALT).sign_object({'path': path})

    def unsign(self, token):
        """
        Resolve a signed token back to a receipt path.

        Raises ``signing.SignatureExpired`` / ``signing.BadSignature``.
        """
        data = signing.TimestampSigner(salt=SIGNING_SALT).unsign_object(
            token,
            max_age=self.url_max_age
        )
        return data['path']

    def signed_url(self, path, request=None):
        """Short-lived retrieval URL for a stored receipt"""
        if not path:
            return None
        url = reverse('receipt-download', kwargs={'token': self.sign(path)})
        if request is not None:
            return request.build_absolute_uri(url)
        return url


receipt_storage = ReceiptStorage()

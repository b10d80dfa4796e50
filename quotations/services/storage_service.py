"""
Object storage for payment proofs (transfer vouchers, check scans).

Works with any S3-compatible backend (AWS S3, MinIO, DigitalOcean Spaces)
through boto3. Proofs are stored under proofs/<cart_id>/ and referenced by
their public URL on the payment.
"""
import logging
import mimetypes
import uuid
from typing import Optional

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import ClientError
from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class StorageService:
    """
    S3-compatible object storage service.

    Usage:
        storage = get_storage_service()
        url = storage.upload_proof(file, cart_id)
        storage.delete_file_by_url(url)
    """

    def __init__(self):
        self.endpoint = current_app.config['S3_ENDPOINT']
        self.bucket = current_app.config['S3_BUCKET']
        self.public_url = current_app.config['S3_PUBLIC_URL'].rstrip('/')

        self.client = boto3.client(
            's3',
            endpoint_url=self.endpoint,
            aws_access_key_id=current_app.config['S3_ACCESS_KEY'],
            aws_secret_access_key=current_app.config['S3_SECRET_KEY'],
            region_name=current_app.config['S3_REGION'],
            config=BotoConfig(signature_version='s3v4')
        )

        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self):
        """Create bucket if it doesn't exist."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code != '404':
                logger.error(f"[STORAGE] Failed to check bucket: {e}")
                raise
            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"[STORAGE] Bucket '{self.bucket}' created")

    def upload_file(self, file: FileStorage, object_name: str,
                    content_type: Optional[str] = None, metadata: Optional[dict] = None) -> str:
        """
        Upload a file and return its public URL.

        Raises:
            ValueError: if file validation fails
            ClientError: if the upload fails
        """
        self._validate_file(file)

        if not content_type:
            content_type = file.content_type or mimetypes.guess_type(file.filename)[0] or 'application/octet-stream'

        extra_args = {'ContentType': content_type}
        if metadata:
            extra_args['Metadata'] = metadata

        try:
            file.seek(0)
            logger.info(f"[STORAGE] Uploading '{object_name}' to bucket '{self.bucket}'...")
            self.client.upload_fileobj(file.stream, self.bucket, object_name, ExtraArgs=extra_args)
            url = self.get_public_url(object_name)
            logger.info(f"[STORAGE] File uploaded: {url}")
            return url
        except ClientError as e:
            logger.exception(f"[STORAGE] Upload failed: {e}")
            raise

    def upload_proof(self, file: FileStorage, cart_id: str) -> str:
        """Upload a payment proof under proofs/<cart_id>/ with a collision-free name."""
        filename = secure_filename(file.filename or '') or 'comprobante'
        object_name = f"proofs/{cart_id}/{uuid.uuid4().hex}_{filename}"
        return self.upload_file(file, object_name, metadata={'cart-id': str(cart_id)})

    def delete_file(self, object_name: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=object_name)
            logger.info(f"[STORAGE] File deleted: {object_name}")
            return True
        except ClientError as e:
            logger.exception(f"[STORAGE] Delete failed: {e}")
            return False

    def delete_file_by_url(self, url: str) -> bool:
        """Delete an object given the public URL returned at upload time."""
        object_name = self.object_name_from_url(url)
        if not object_name:
            logger.warning(f"[STORAGE] URL does not belong to bucket '{self.bucket}': {url}")
            return False
        return self.delete_file(object_name)

    def get_public_url(self, object_name: str) -> str:
        return f"{self.public_url}/{self.bucket}/{object_name}"

    def object_name_from_url(self, url: str) -> Optional[str]:
        prefix = f"{self.public_url}/{self.bucket}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def _validate_file(self, file: FileStorage):
        """
        Raises:
            ValueError: empty upload, too large, or disallowed type
        """
        if not file or not file.filename:
            raise ValueError("No se proporcionó ningún archivo")

        max_size = current_app.config.get('MAX_UPLOAD_SIZE', 5 * 1024 * 1024)
        file.seek(0, 2)
        file_size = file.tell()
        file.seek(0)

        if file_size > max_size:
            max_mb = max_size / (1024 * 1024)
            raise ValueError(f"El archivo es demasiado grande. Máximo {max_mb:.1f}MB")

        extension = file.filename.rsplit('.', 1)[-1].lower() if '.' in file.filename else ''
        allowed_extensions = current_app.config.get('ALLOWED_EXTENSIONS', set())
        if allowed_extensions and extension not in allowed_extensions:
            raise ValueError(f"Extensión no permitida: .{extension}")

        allowed_types = current_app.config.get('ALLOWED_MIME_TYPES', set())
        if allowed_types and file.content_type not in allowed_types:
            raise ValueError(
                f"Tipo de archivo no permitido: {file.content_type}. Permitidos: {', '.join(sorted(allowed_types))}"
            )


_storage_service = None


def get_storage_service() -> StorageService:
    """Get or create the StorageService singleton."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from services.storage.base_storage import BaseStorage, ObjectStoreError, ObjectMissing

# S3 DeleteObjects 单次最多 1000 个 key
DELETE_BATCH = 1000


class S3Storage(BaseStorage):
    def __init__(self, bucket_name, client=None, **client_kwargs):
        self.s3 = client or boto3.client('s3', **client_kwargs)
        self.bucket = bucket_name

    def put_object(self, key, stream, size, content_type):
        extra = {"ContentType": content_type or "application/octet-stream"}
        try:
            self.s3.upload_fileobj(stream, self.bucket, key, ExtraArgs=extra)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"put {key} failed: {e}") from e
        return key

    def get_object(self, key):
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ObjectMissing(key) from e
            raise ObjectStoreError(f"get {key} failed: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"get {key} failed: {e}") from e
        return self._iter_body(key, obj['Body'])

    def _iter_body(self, key, body):
        try:
            for chunk in body.iter_chunks(chunk_size=self.CHUNK_SIZE):
                yield chunk
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"read {key} failed: {e}") from e
        finally:
            body.close()

    def delete_object(self, key):
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"delete {key} failed: {e}") from e
        return True

    def delete_objects(self, keys):
        keys = list(keys)
        failed = []
        for start in range(0, len(keys), DELETE_BATCH):
            batch = keys[start:start + DELETE_BATCH]
            try:
                resp = self.s3.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (BotoCoreError, ClientError):
                failed.extend(batch)
                continue
            failed.extend(err["Key"] for err in resp.get("Errors", []))
        return failed

    def presigned_get_url(self, key, ttl_seconds):
        try:
            return self.s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"presign {key} failed: {e}") from e

    def list_keys(self):
        paginator = self.s3.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=self.bucket):
                for obj in page.get('Contents', []):
                    yield obj['Key']
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"list {self.bucket} failed: {e}") from e

    def exists(self, key):
        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound"):
                return False
            raise ObjectStoreError(f"head {key} failed: {e}") from e

"""Remote storage client: S3 for file contents, SimpleDB for metadata.

The library core depends only on the :class:`LibraryClient` contract.
:class:`AwsLibraryClient` implements it with boto3. Retries and timeouts
are left to botocore's transport configuration; failures are translated
into :mod:`cloudlib.exceptions` types and propagated, never swallowed.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cloudlib.exceptions import (
    AttributeLimitError,
    DuplicateLibraryError,
    NotFoundError,
    RemoteUnavailableError,
)
from cloudlib.models import LibraryConfig
from cloudlib.query import CompiledQuery

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound", "NoSuchDomain", "NoSuchBucket"})
DUPLICATE_BUCKET_CODES = frozenset({"BucketAlreadyExists", "BucketAlreadyOwnedByYou"})

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

# SimpleDB limits: bytes per attribute value, name/value pairs per item
MAX_VALUE_BYTES = 1024
MAX_ITEM_PAIRS = 256


class LibraryClient(Protocol):
    """Contract for the remote blob store + attribute store pair."""

    def create_library(self) -> None: ...

    def delete_library(self) -> None: ...

    def put(self, name: str, data: bytes | BinaryIO) -> None: ...

    def get(self, name: str) -> bytes: ...

    def url(self, name: str, expires_in: int) -> str: ...

    def delete(self, name: str) -> None: ...

    def put_attributes(
        self, name: str, mapping: dict[str, list[str]], replace: bool = True
    ) -> None: ...

    def get_attributes(self, name: str) -> dict[str, list[str]]: ...

    def delete_attributes(
        self, name: str, attribute_names: list[str] | None = None
    ) -> None: ...

    def query(
        self, compiled: CompiledQuery, page_size: int, token: str | None = None
    ) -> tuple[list[str], str | None]: ...


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class AwsLibraryClient:
    """boto3-backed :class:`LibraryClient`.

    The bucket and the SimpleDB domain share ``config.library_name``.

    Usage::

        client = AwsLibraryClient(LibraryConfig("my-library", key_id, secret))
        client.put("3f2a...9c.pdf", open("paper.pdf", "rb"))
        names, token = client.query(compile_query("ti=logic"), page_size=10)
    """

    def __init__(
        self,
        config: LibraryConfig,
        s3: Any | None = None,
        sdb: Any | None = None,
    ) -> None:
        self._config = config
        self._bucket = config.library_name
        self._domain = config.library_name
        if s3 is None or sdb is None:
            session = boto3.session.Session(
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                region_name=config.region,
            )
            s3 = s3 or session.client("s3")
            sdb = sdb or session.client("sdb")
        self._s3 = s3
        self._sdb = sdb

    def _safe_call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Call a boto3 operation, translating failures to library errors."""
        try:
            return func(*args, **kwargs)
        except ClientError as exc:
            code = _error_code(exc)
            if code in NOT_FOUND_CODES:
                raise NotFoundError(f"{code}: {exc}") from exc
            if code in DUPLICATE_BUCKET_CODES:
                raise DuplicateLibraryError(
                    f"Library '{self._bucket}' already exists ({code})"
                ) from exc
            raise RemoteUnavailableError(str(exc)) from exc
        except BotoCoreError as exc:
            raise RemoteUnavailableError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Library management
    # ------------------------------------------------------------------

    def create_library(self) -> None:
        """Create the bucket and the SimpleDB domain."""
        kwargs: dict[str, Any] = {"Bucket": self._bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self._config.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self._config.region
            }
        self._safe_call(self._s3.create_bucket, **kwargs)
        self._safe_call(self._sdb.create_domain, DomainName=self._domain)
        logger.info("Created library %s", self._bucket)

    def delete_library(self) -> None:
        """Delete every stored object, the bucket, and the domain."""
        paginator = self._s3.get_paginator("list_objects_v2")
        keys: list[dict[str, str]] = []
        for page in self._safe_call(lambda: list(paginator.paginate(Bucket=self._bucket))):
            keys.extend({"Key": obj["Key"]} for obj in page.get("Contents", []))
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            self._safe_call(
                self._s3.delete_objects,
                Bucket=self._bucket,
                Delete={"Objects": batch, "Quiet": True},
            )
        self._safe_call(self._s3.delete_bucket, Bucket=self._bucket)
        self._safe_call(self._sdb.delete_domain, DomainName=self._domain)
        logger.info("Deleted library %s (%d objects)", self._bucket, len(keys))

    # ------------------------------------------------------------------
    # Blob store
    # ------------------------------------------------------------------

    def put(self, name: str, data: bytes | BinaryIO) -> None:
        self._safe_call(self._s3.put_object, Bucket=self._bucket, Key=name, Body=data)
        logger.debug("Stored object %s in %s", name, self._bucket)

    def get(self, name: str) -> bytes:
        response = self._safe_call(self._s3.get_object, Bucket=self._bucket, Key=name)
        return self._safe_call(response["Body"].read)

    def url(self, name: str, expires_in: int) -> str:
        """Presigned download URL for an object."""
        return self._safe_call(
            self._s3.generate_presigned_url,
            "get_object",
            Params={"Bucket": self._bucket, "Key": name},
            ExpiresIn=expires_in,
        )

    def delete(self, name: str) -> None:
        self._safe_call(self._s3.delete_object, Bucket=self._bucket, Key=name)

    # ------------------------------------------------------------------
    # Attribute store
    # ------------------------------------------------------------------

    def put_attributes(
        self, name: str, mapping: dict[str, list[str]], replace: bool = True
    ) -> None:
        """Write an item; each list value becomes repeated Name/Value pairs.

        Raises:
            AttributeLimitError: If a value or the item exceeds SimpleDB's
                size limits. Nothing is written in that case.
        """
        attributes = [
            {"Name": key, "Value": value, "Replace": replace}
            for key, values in mapping.items()
            for value in values
        ]
        if not attributes:
            return
        _check_limits(name, attributes)
        self._safe_call(
            self._sdb.put_attributes,
            DomainName=self._domain,
            ItemName=name,
            Attributes=attributes,
        )

    def get_attributes(self, name: str) -> dict[str, list[str]]:
        """Read an item as ``{name: [values]}``; empty dict if absent."""
        response = self._safe_call(
            self._sdb.get_attributes,
            DomainName=self._domain,
            ItemName=name,
            ConsistentRead=True,
        )
        return _group_attributes(response.get("Attributes", []))

    def delete_attributes(
        self, name: str, attribute_names: list[str] | None = None
    ) -> None:
        """Delete the named attributes of an item, or the whole item."""
        kwargs: dict[str, Any] = {"DomainName": self._domain, "ItemName": name}
        if attribute_names is not None:
            if not attribute_names:
                return
            kwargs["Attributes"] = [{"Name": n} for n in attribute_names]
        self._safe_call(self._sdb.delete_attributes, **kwargs)

    def query(
        self, compiled: CompiledQuery, page_size: int, token: str | None = None
    ) -> tuple[list[str], str | None]:
        """Run a compiled query; returns one page of names and the next token."""
        expression = compiled.to_select(self._domain, limit=page_size)
        kwargs: dict[str, Any] = {"SelectExpression": expression, "ConsistentRead": True}
        if token:
            kwargs["NextToken"] = token
        logger.debug("select: %s (token=%s)", expression, bool(token))
        response = self._safe_call(self._sdb.select, **kwargs)
        names = [item["Name"] for item in response.get("Items", [])]
        return names, response.get("NextToken") or None


def _group_attributes(pairs: list[dict[str, str]]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for pair in pairs:
        grouped.setdefault(pair["Name"], []).append(pair["Value"])
    return grouped


def _check_limits(name: str, attributes: list[dict[str, Any]]) -> None:
    if len(attributes) > MAX_ITEM_PAIRS:
        raise AttributeLimitError(
            f"{name}: {len(attributes)} attribute values, limit is {MAX_ITEM_PAIRS}"
        )
    for pair in attributes:
        size = len(pair["Value"].encode("utf-8"))
        if size > MAX_VALUE_BYTES:
            raise AttributeLimitError(
                f"{name}: value of '{pair['Name']}' is {size} bytes, "
                f"limit is {MAX_VALUE_BYTES}"
            )

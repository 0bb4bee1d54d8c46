"""AWS provider - S3 origin store and CloudFront distribution via boto3."""

from __future__ import annotations

import copy
import json
import logging
import re
import uuid
from functools import cached_property
from typing import TYPE_CHECKING, Any, Self

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError
from pydantic import BaseModel, ConfigDict

from edge_provisioner.core.provider import OWNER_TAG, InvalidationStatus, RemoteObject
from edge_provisioner.errors import ProviderError, ProviderUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

logger = logging.getLogger(__name__)

# Error codes that indicate a transient condition rather than a bad request.
_TRANSIENT_CODES = frozenset(
    {
        "InternalError",
        "RequestLimitExceeded",
        "RequestTimeout",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "TooManyInvalidationsInProgress",
    }
)

_OWNER_MARKER_RE = re.compile(r"\s*\[edge-provisioner:(?P<owner>[^\]]+)\]$")
_DEFAULT_REGION = "us-east-1"


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _call(
    operation: str,
    fn: Callable[..., Any],
    *,
    missing: tuple[str, ...] = (),
    **kwargs: Any,
) -> Any:
    """Invoke a boto3 client method and translate its failures.

    Returns ``None`` when the error code is one of *missing* (the object does
    not exist).
    """
    try:
        return fn(**kwargs)
    except ClientError as exc:
        code = _error_code(exc)
        if code in missing:
            return None
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
        if code in _TRANSIENT_CODES or status >= 500:
            raise ProviderUnavailableError(operation, str(exc)) from exc
        raise ProviderError(operation, str(exc)) from exc
    except (BotoConnectionError, HTTPClientError) as exc:
        raise ProviderUnavailableError(operation, str(exc)) from exc
    except BotoCoreError as exc:
        raise ProviderError(operation, str(exc)) from exc


def _split_owner(description: str) -> tuple[str, str | None]:
    """Strip the ownership marker from an access-control description."""
    match = _OWNER_MARKER_RE.search(description)
    if match is None:
        return description, None
    return description[: match.start()], match.group("owner")


def _with_owner(description: str, owner: str | None) -> str:
    if owner is None:
        return description
    return f"{description} [edge-provisioner:{owner}]".lstrip()


class AWSProvider(BaseModel):
    """Edge provider backed by Amazon S3 and CloudFront.

    For normal use, provide a region (and optionally a named profile or a
    custom endpoint).  For tests, inject pre-built clients with
    :meth:`from_clients`.

    Examples:
        provider = AWSProvider(region="us-west-1")

        # With stubbed or mocked clients
        provider = AWSProvider.from_clients(s3=s3_client, cloudfront=cf_client)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None

    _injected_s3: Any = None
    _injected_cloudfront: Any = None

    @classmethod
    def from_clients(cls, *, s3: Any, cloudfront: Any) -> Self:
        """Create a provider around existing boto3 (or mock) clients."""
        provider = cls.model_construct()
        provider._injected_s3 = s3
        provider._injected_cloudfront = cloudfront
        return provider

    @cached_property
    def session(self) -> boto3.session.Session:
        return boto3.session.Session(profile_name=self.profile, region_name=self.region)

    @cached_property
    def boto_config(self) -> BotoConfig:
        # Retries are handled by the caller's RetryPolicy.
        return BotoConfig(retries={"max_attempts": 1, "mode": "standard"}, connect_timeout=10)

    @cached_property
    def s3(self) -> Any:
        if self._injected_s3 is not None:
            return self._injected_s3
        return self.session.client(
            "s3", endpoint_url=self.endpoint_url, config=self.boto_config
        )

    @cached_property
    def cloudfront(self) -> Any:
        if self._injected_cloudfront is not None:
            return self._injected_cloudfront
        return self.session.client(
            "cloudfront", endpoint_url=self.endpoint_url, config=self.boto_config
        )

    # ------------------------------------------------------------------
    # Object store
    # ------------------------------------------------------------------

    def _bucket_tags(self, name: str) -> dict[str, str]:
        resp = _call(
            "s3.get_bucket_tagging",
            self.s3.get_bucket_tagging,
            missing=("NoSuchTagSet",),
            Bucket=name,
        )
        if resp is None:
            return {}
        return {t["Key"]: t["Value"] for t in resp.get("TagSet", [])}

    def _describe_store(self, name: str) -> dict[str, Any] | None:
        head = _call(
            "s3.head_bucket",
            self.s3.head_bucket,
            missing=("404", "NoSuchBucket", "NotFound"),
            Bucket=name,
        )
        if head is None:
            return None

        location = _call("s3.get_bucket_location", self.s3.get_bucket_location, Bucket=name)
        region = location.get("LocationConstraint") or _DEFAULT_REGION
        versioning = _call("s3.get_bucket_versioning", self.s3.get_bucket_versioning, Bucket=name)
        pab = _call(
            "s3.get_public_access_block",
            self.s3.get_public_access_block,
            missing=("NoSuchPublicAccessBlockConfiguration",),
            Bucket=name,
        )
        block = False
        if pab is not None:
            block = all(pab.get("PublicAccessBlockConfiguration", {}).values())
        tags = self._bucket_tags(name)
        owner = tags.pop(OWNER_TAG, None)
        return {
            "bucket_name": name,
            "region": region,
            "versioning": versioning.get("Status") == "Enabled",
            "block_public_access": block,
            "tags": tags,
            "owner": owner,
            "name": name,
            "arn": f"arn:aws:s3:::{name}",
            "regional_domain_name": f"{name}.s3.{region}.amazonaws.com",
        }

    def find_store(self, owner_id: str, *, hint: str | None = None) -> dict[str, Any] | None:
        if hint is not None:
            attrs = self._describe_store(hint)
            if attrs is not None and attrs["owner"] in (owner_id, None):
                return attrs

        buckets = _call("s3.list_buckets", self.s3.list_buckets).get("Buckets", [])
        for bucket in buckets:
            name = bucket["Name"]
            if name == hint:
                continue
            try:
                tags = self._bucket_tags(name)
            except ProviderUnavailableError:
                raise
            except ProviderError as exc:
                # Buckets in other regions or accounts' policies may refuse tag reads.
                logger.debug("Skipping bucket %s during owner scan: %s", name, exc)
                continue
            if tags and tags.get(OWNER_TAG) == owner_id:
                return self._describe_store(name)
        return None

    def _put_public_access_block(self, name: str, enabled: bool) -> None:
        _call(
            "s3.put_public_access_block",
            self.s3.put_public_access_block,
            Bucket=name,
            PublicAccessBlockConfiguration={
                "BlockPublicAcls": enabled,
                "IgnorePublicAcls": enabled,
                "BlockPublicPolicy": enabled,
                "RestrictPublicBuckets": enabled,
            },
        )

    def _put_versioning(self, name: str, enabled: bool) -> None:
        _call(
            "s3.put_bucket_versioning",
            self.s3.put_bucket_versioning,
            Bucket=name,
            VersioningConfiguration={"Status": "Enabled" if enabled else "Suspended"},
        )

    def _put_tags(self, name: str, tags: Mapping[str, str], owner: str | None) -> None:
        tag_set = dict(tags)
        if owner is not None:
            tag_set[OWNER_TAG] = owner
        _call(
            "s3.put_bucket_tagging",
            self.s3.put_bucket_tagging,
            Bucket=name,
            Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in sorted(tag_set.items())]},
        )

    def create_store(self, owner_id: str, spec: Mapping[str, Any]) -> dict[str, Any]:
        name = spec["bucket_name"]
        region = spec.get("region") or _DEFAULT_REGION
        params: dict[str, Any] = {"Bucket": name}
        if region != _DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        logger.info("Creating bucket %s in %s", name, region)
        _call("s3.create_bucket", self.s3.create_bucket, **params)

        self._put_public_access_block(name, bool(spec.get("block_public_access", True)))
        if spec.get("versioning"):
            self._put_versioning(name, True)
        self._put_tags(name, spec.get("tags") or {}, owner_id)

        attrs = self._describe_store(name)
        if attrs is None:
            raise ProviderError("s3.create_bucket", f"bucket {name} not visible after creation")
        return attrs

    def update_store(self, name: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        if "block_public_access" in changes:
            self._put_public_access_block(name, bool(changes["block_public_access"]))
        if "versioning" in changes:
            self._put_versioning(name, bool(changes["versioning"]))
        if "tags" in changes or "owner" in changes:
            current = self._bucket_tags(name)
            owner = changes.get("owner") or current.pop(OWNER_TAG, None)
            current.pop(OWNER_TAG, None)
            self._put_tags(name, {**current, **(changes.get("tags") or {})}, owner)

        attrs = self._describe_store(name)
        if attrs is None:
            raise ProviderError("s3.update_bucket", f"bucket {name} disappeared during update")
        return attrs

    def list_objects(self, store: str, prefix: str = "") -> list[RemoteObject]:
        paginator = self.s3.get_paginator("list_objects_v2")
        objects: list[RemoteObject] = []
        # Pages are fetched lazily, so iterate inside the translated call.
        pages = _call(
            "s3.list_objects_v2",
            lambda: list(paginator.paginate(Bucket=store, Prefix=prefix)),
        )
        for page in pages:
            for obj in page.get("Contents", []):
                etag = obj["ETag"].strip('"')
                if "-" in etag:
                    # Multipart ETags are not content hashes; use stored metadata.
                    head = _call(
                        "s3.head_object", self.s3.head_object, Bucket=store, Key=obj["Key"]
                    )
                    etag = head.get("Metadata", {}).get("fingerprint", etag)
                objects.append(RemoteObject(key=obj["Key"], fingerprint=etag, size=obj["Size"]))
        return objects

    def put_object(
        self,
        store: str,
        key: str,
        body: bytes,
        *,
        content_type: str,
        cache_control: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        params: dict[str, Any] = {
            "Bucket": store,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
            "Metadata": dict(metadata or {}),
        }
        if cache_control:
            params["CacheControl"] = cache_control
        _call("s3.put_object", self.s3.put_object, **params)

    def delete_object(self, store: str, key: str) -> None:
        _call("s3.delete_object", self.s3.delete_object, Bucket=store, Key=key)

    def get_policy(self, store: str) -> dict[str, Any] | None:
        resp = _call(
            "s3.get_bucket_policy",
            self.s3.get_bucket_policy,
            missing=("NoSuchBucketPolicy", "NoSuchBucket"),
            Bucket=store,
        )
        if resp is None:
            return None
        return json.loads(resp["Policy"])

    def set_policy(self, store: str, policy: Mapping[str, Any]) -> None:
        _call(
            "s3.put_bucket_policy",
            self.s3.put_bucket_policy,
            Bucket=store,
            Policy=json.dumps(policy),
        )

    # ------------------------------------------------------------------
    # Origin access control
    # ------------------------------------------------------------------

    @staticmethod
    def _oac_attrs(oac_id: str, config: Mapping[str, Any]) -> dict[str, Any]:
        description, owner = _split_owner(config.get("Description", "") or "")
        return {
            "name": config["Name"],
            "description": description,
            "origin_type": config.get("OriginAccessControlOriginType", "s3"),
            "signing_behavior": config.get("SigningBehavior", "always"),
            "signing_protocol": config.get("SigningProtocol", "sigv4"),
            "owner": owner,
            "id": oac_id,
        }

    @staticmethod
    def _oac_config(spec: Mapping[str, Any], owner: str | None) -> dict[str, Any]:
        return {
            "Name": spec["name"],
            "Description": _with_owner(spec.get("description", ""), owner),
            "SigningProtocol": spec.get("signing_protocol", "sigv4"),
            "SigningBehavior": spec.get("signing_behavior", "always"),
            "OriginAccessControlOriginType": spec.get("origin_type", "s3"),
        }

    def find_origin_access_control(
        self, owner_id: str, *, hint: str | None = None
    ) -> dict[str, Any] | None:
        adoptable: dict[str, Any] | None = None
        marker: str | None = None
        while True:
            params: dict[str, Any] = {"Marker": marker} if marker else {}
            resp = _call(
                "cloudfront.list_origin_access_controls",
                self.cloudfront.list_origin_access_controls,
                **params,
            )
            listing = resp.get("OriginAccessControlList", {})
            for item in listing.get("Items", []) or []:
                attrs = self._oac_attrs(item["Id"], item)
                if attrs["owner"] == owner_id:
                    return attrs
                if hint is not None and attrs["name"] == hint and attrs["owner"] is None:
                    adoptable = attrs
            if not listing.get("IsTruncated"):
                return adoptable
            marker = listing.get("NextMarker")

    def create_origin_access_control(
        self, owner_id: str, spec: Mapping[str, Any]
    ) -> dict[str, Any]:
        logger.info("Creating origin access control %s", spec["name"])
        resp = _call(
            "cloudfront.create_origin_access_control",
            self.cloudfront.create_origin_access_control,
            OriginAccessControlConfig=self._oac_config(spec, owner_id),
        )
        oac = resp["OriginAccessControl"]
        return self._oac_attrs(oac["Id"], oac["OriginAccessControlConfig"])

    def update_origin_access_control(
        self, oac_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any]:
        resp = _call(
            "cloudfront.get_origin_access_control_config",
            self.cloudfront.get_origin_access_control_config,
            Id=oac_id,
        )
        current = self._oac_attrs(oac_id, resp["OriginAccessControlConfig"])
        merged = {**current, **changes}
        updated = _call(
            "cloudfront.update_origin_access_control",
            self.cloudfront.update_origin_access_control,
            OriginAccessControlConfig=self._oac_config(merged, merged.get("owner")),
            Id=oac_id,
            IfMatch=resp["ETag"],
        )
        oac = updated["OriginAccessControl"]
        return self._oac_attrs(oac["Id"], oac["OriginAccessControlConfig"])

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------

    @staticmethod
    def _config_to_spec(config: Mapping[str, Any]) -> dict[str, Any]:
        origins = config.get("Origins", {}).get("Items", []) or []
        origin = origins[0] if origins else {}
        behavior = config.get("DefaultCacheBehavior", {})
        cert = config.get("ViewerCertificate", {})
        errors = config.get("CustomErrorResponses", {}).get("Items", []) or []
        return {
            "origin": origin.get("DomainName"),
            "origin_access_control": origin.get("OriginAccessControlId") or None,
            "comment": config.get("Comment", ""),
            "enabled": config.get("Enabled", True),
            "default_root_object": config.get("DefaultRootObject", ""),
            "price_class": config.get("PriceClass", "PriceClass_All"),
            "aliases": list(config.get("Aliases", {}).get("Items", []) or []),
            "certificate_arn": cert.get("ACMCertificateArn"),
            "viewer_protocol_policy": behavior.get("ViewerProtocolPolicy"),
            "cache_policy_id": behavior.get("CachePolicyId"),
            "compress": behavior.get("Compress", False),
            "http_version": config.get("HttpVersion", "http2"),
            "error_responses": [
                {
                    "error_code": e["ErrorCode"],
                    "response_code": int(e["ResponseCode"]) if e.get("ResponseCode") else None,
                    "response_page_path": e.get("ResponsePagePath") or None,
                    "min_ttl": e.get("ErrorCachingMinTTL", 10),
                }
                for e in errors
            ],
        }

    @staticmethod
    def _spec_to_config(
        spec: Mapping[str, Any], base: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Render a distribution config, preserving unmanaged fields from *base*."""
        config: dict[str, Any] = copy.deepcopy(dict(base)) if base else {}
        config.setdefault("CallerReference", str(uuid.uuid4()))
        origin_id = "origin-store"
        config["Origins"] = {
            "Quantity": 1,
            "Items": [
                {
                    "Id": origin_id,
                    "DomainName": spec["origin"],
                    "OriginAccessControlId": spec.get("origin_access_control") or "",
                    "S3OriginConfig": {"OriginAccessIdentity": ""},
                }
            ],
        }
        behavior = dict(config.get("DefaultCacheBehavior", {}))
        behavior.update(
            {
                "TargetOriginId": origin_id,
                "ViewerProtocolPolicy": spec["viewer_protocol_policy"],
                "CachePolicyId": spec["cache_policy_id"],
                "Compress": spec["compress"],
            }
        )
        behavior.setdefault(
            "AllowedMethods",
            {
                "Quantity": 2,
                "Items": ["GET", "HEAD"],
                "CachedMethods": {"Quantity": 2, "Items": ["GET", "HEAD"]},
            },
        )
        config["DefaultCacheBehavior"] = behavior
        aliases = list(spec.get("aliases") or [])
        config["Aliases"] = {"Quantity": len(aliases), "Items": aliases}
        if spec.get("certificate_arn"):
            config["ViewerCertificate"] = {
                "ACMCertificateArn": spec["certificate_arn"],
                "SSLSupportMethod": "sni-only",
                "MinimumProtocolVersion": "TLSv1.2_2021",
            }
        else:
            config["ViewerCertificate"] = {"CloudFrontDefaultCertificate": True}
        errors = [
            {
                "ErrorCode": e["error_code"],
                "ResponsePagePath": e.get("response_page_path") or "",
                "ResponseCode": str(e["response_code"]) if e.get("response_code") else "",
                "ErrorCachingMinTTL": e.get("min_ttl", 10),
            }
            for e in spec.get("error_responses") or []
        ]
        config["CustomErrorResponses"] = {"Quantity": len(errors), "Items": errors}
        config["Comment"] = spec.get("comment", "")
        config["Enabled"] = spec.get("enabled", True)
        config["DefaultRootObject"] = spec.get("default_root_object", "")
        config["PriceClass"] = spec.get("price_class", "PriceClass_100")
        config["HttpVersion"] = spec.get("http_version", "http2")
        return config

    def _distribution_owner(self, arn: str) -> str | None:
        resp = _call(
            "cloudfront.list_tags_for_resource",
            self.cloudfront.list_tags_for_resource,
            Resource=arn,
        )
        for tag in resp.get("Tags", {}).get("Items", []) or []:
            if tag["Key"] == OWNER_TAG:
                return tag["Value"]
        return None

    def _distribution_attrs(self, dist: Mapping[str, Any]) -> dict[str, Any]:
        attrs = self._config_to_spec(dist["DistributionConfig"])
        attrs.update(
            {
                "owner": self._distribution_owner(dist["ARN"]),
                "id": dist["Id"],
                "arn": dist["ARN"],
                "domain_name": dist["DomainName"],
                "status": dist.get("Status", ""),
            }
        )
        return attrs

    def get_distribution(self, distribution_id: str) -> dict[str, Any] | None:
        resp = _call(
            "cloudfront.get_distribution",
            self.cloudfront.get_distribution,
            missing=("NoSuchDistribution",),
            Id=distribution_id,
        )
        if resp is None:
            return None
        return self._distribution_attrs(resp["Distribution"])

    def find_distribution(self, owner_id: str) -> dict[str, Any] | None:
        marker: str | None = None
        while True:
            params: dict[str, Any] = {"Marker": marker} if marker else {}
            resp = _call(
                "cloudfront.list_distributions", self.cloudfront.list_distributions, **params
            )
            listing = resp.get("DistributionList", {})
            for item in listing.get("Items", []) or []:
                if self._distribution_owner(item["ARN"]) == owner_id:
                    return self.get_distribution(item["Id"])
            if not listing.get("IsTruncated"):
                return None
            marker = listing.get("NextMarker")

    def create_distribution(self, owner_id: str, spec: Mapping[str, Any]) -> dict[str, Any]:
        logger.info("Creating distribution for origin %s", spec["origin"])
        resp = _call(
            "cloudfront.create_distribution_with_tags",
            self.cloudfront.create_distribution_with_tags,
            DistributionConfigWithTags={
                "DistributionConfig": self._spec_to_config(spec),
                "Tags": {"Items": [{"Key": OWNER_TAG, "Value": owner_id}]},
            },
        )
        return self._distribution_attrs(resp["Distribution"])

    def update_distribution(
        self, distribution_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any]:
        resp = _call(
            "cloudfront.get_distribution_config",
            self.cloudfront.get_distribution_config,
            Id=distribution_id,
        )
        config = resp["DistributionConfig"]
        spec = {**self._config_to_spec(config), **changes}
        spec.pop("owner", None)

        if changes.get("owner"):
            current = self.get_distribution(distribution_id)
            if current is None:
                raise ProviderError("cloudfront.tag_resource", f"{distribution_id} not found")
            _call(
                "cloudfront.tag_resource",
                self.cloudfront.tag_resource,
                Resource=current["arn"],
                Tags={"Items": [{"Key": OWNER_TAG, "Value": changes["owner"]}]},
            )

        if set(changes) - {"owner"}:
            _call(
                "cloudfront.update_distribution",
                self.cloudfront.update_distribution,
                DistributionConfig=self._spec_to_config(spec, base=config),
                Id=distribution_id,
                IfMatch=resp["ETag"],
            )

        attrs = self.get_distribution(distribution_id)
        if attrs is None:
            raise ProviderError("cloudfront.update_distribution", f"{distribution_id} not found")
        return attrs

    def create_invalidation(
        self, distribution_id: str, paths: Sequence[str], *, reference: str | None = None
    ) -> str:
        resp = _call(
            "cloudfront.create_invalidation",
            self.cloudfront.create_invalidation,
            DistributionId=distribution_id,
            InvalidationBatch={
                "Paths": {"Quantity": len(paths), "Items": list(paths)},
                "CallerReference": reference or uuid.uuid4().hex,
            },
        )
        return resp["Invalidation"]["Id"]

    def get_invalidation_status(
        self, distribution_id: str, invalidation_id: str
    ) -> InvalidationStatus:
        resp = _call(
            "cloudfront.get_invalidation",
            self.cloudfront.get_invalidation,
            DistributionId=distribution_id,
            Id=invalidation_id,
        )
        status = resp["Invalidation"]["Status"]
        if status == "Completed":
            return "completed"
        if status == "InProgress":
            return "pending"
        return "failed"

"""Content-addressed object keys for uploaded artifacts."""

import hashlib
import posixpath
from typing import Tuple
from urllib.parse import urlparse


def _sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def custom_resource(name: str, zipped: bytes) -> str:
    return f"manual/scripts/custom-resources/{name}/{_sha256(zipped)}.zip"


def env_file(path: str, content: bytes) -> str:
    base = posixpath.basename(path)
    stem, _ = posixpath.splitext(base)
    return f"manual/env-files/{stem}/{_sha256(content)}.env"


def addons(workload: str, content: bytes) -> str:
    return f"manual/addons/{workload}/{_sha256(content)}.json"


def stack_template(stack_name: str, content: bytes) -> str:
    return f"manual/templates/{stack_name}/{_sha256(content)}.json"


def object_url(bucket: str, region: str, key: str) -> str:
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def parse_url(url: str) -> Tuple[str, str]:
    """Split an object URL into (bucket, key).

    Accepts virtual-hosted style ``https://bucket.s3.region.amazonaws.com/key``
    and ``s3://bucket/key``.
    """
    parsed = urlparse(url)
    key = parsed.path.lstrip("/")
    if parsed.scheme == "s3":
        bucket = parsed.netloc
    else:
        bucket = parsed.netloc.split(".s3", 1)[0]
    if not bucket or not key:
        raise ValueError(f"cannot parse S3 URL {url}")
    return bucket, key


def object_arn(partition: str, bucket: str, key: str = "") -> str:
    if key:
        return f"arn:{partition}:s3:::{bucket}/{key}"
    return f"arn:{partition}:s3:::{bucket}"

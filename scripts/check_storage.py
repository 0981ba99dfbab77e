#!/usr/bin/env python3
"""
Check the object store configuration from the command line.

Reaches the bucket, and with --write also uploads, signs and deletes a small
probe object so the full image lifecycle is exercised.
"""

import argparse
import sys
from datetime import datetime, timezone

from malawi_properties_service.config import settings
from malawi_properties_service.routers.health_routes import configuration_report
from malawi_properties_service.storage import (
    ObjectStorage,
    StorageConfigurationError,
    StorageOperationError,
)

# 1x1 transparent GIF
PROBE_IMAGE = bytes.fromhex("47494638396101000100800000000000ffffff21f90401000000002c00000000010001000002024401003b")


def check(write: bool) -> bool:
    report = configuration_report(settings)["storage"]
    if report["missing"]:
        print(f"❌ Missing configuration: {', '.join(report['missing'])}")
        return False
    for warning in report["warnings"]:
        print(f"⚠️  {warning}")

    storage = ObjectStorage(settings)
    print(f"Bucket {storage.bucket} at {storage.endpoint}")

    try:
        storage.head_bucket()
        print("✅ Bucket reachable")

        if not write:
            return True

        path = f"diagnostic/probe-{int(datetime.now(timezone.utc).timestamp())}.gif"
        url = storage.upload_file(PROBE_IMAGE, path, "image/gif")
        print(f"✅ Uploaded probe: {url}")
        if storage.extract_path_from_url(url) != path:
            print(f"⚠️  Public URL does not map back to {path}; image deletes will be rejected")
        print(f"✅ Presigned URL: {storage.get_presigned_url(path, expires_in=60)}")
        storage.delete_file(path)
        print("✅ Probe deleted")
    except (StorageConfigurationError, StorageOperationError) as e:
        print(f"❌ {e}")
        return False
    return True


def parse_args():
    parser = argparse.ArgumentParser(description="Check the property image bucket")
    parser.add_argument("--write", action="store_true", help="Also upload and delete a probe object")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    sys.exit(0 if check(args.write) else 1)

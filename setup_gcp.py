#!/usr/bin/env python3
"""
Google Cloud setup script for templit.

This script uses Application Default Credentials to:
1. Create the artifact staging bucket
2. Create a static Bigtable instance shared by test runs
3. Verify both resources exist

Reads GCP_PROJECT, GCP_ARTIFACT_BUCKET, BIGTABLE_STATIC_INSTANCE_ID and
BIGTABLE_CLUSTER_ZONE from the environment (or .env).
"""

import os
import sys

from dotenv import load_dotenv

try:
    from google.api_core import exceptions as gcp_exceptions
    from google.cloud import bigtable, storage
    from google.cloud.bigtable import enums
except ImportError:
    print("❌ Error: google-cloud-bigtable / google-cloud-storage not found")
    print("Install it with: uv add google-cloud-bigtable google-cloud-storage")
    sys.exit(1)


def read_settings() -> dict[str, str]:
    """Read required settings from the environment."""
    load_dotenv()
    settings = {
        "project": os.getenv("GCP_PROJECT", ""),
        "region": os.getenv("GCP_REGION", "us-central1"),
        "bucket": os.getenv("GCP_ARTIFACT_BUCKET", "").removeprefix("gs://").rstrip("/"),
        "instance": os.getenv("BIGTABLE_STATIC_INSTANCE_ID", ""),
        "zone": os.getenv("BIGTABLE_CLUSTER_ZONE", "us-central1-b"),
    }
    missing = [key for key in ("project", "bucket", "instance") if not settings[key]]
    if missing:
        print(f"❌ Error: Missing configuration: {', '.join(missing)}")
        print("Required: GCP_PROJECT, GCP_ARTIFACT_BUCKET, BIGTABLE_STATIC_INSTANCE_ID")
        sys.exit(1)
    return settings


def setup_gcp():
    """Create the staging bucket and static Bigtable instance."""
    print("=" * 60)
    print("templit Google Cloud Setup")
    print("=" * 60)
    print()

    print("📋 Reading configuration...")
    settings = read_settings()
    print(f"   Project: {settings['project']}")
    print(f"   Bucket: {settings['bucket']}")
    print(f"   Bigtable instance: {settings['instance']} ({settings['zone']})")
    print()

    # Step 1: staging bucket
    print(f"📦 Creating bucket {settings['bucket']}...")
    storage_client = storage.Client(project=settings["project"])
    try:
        storage_client.create_bucket(settings["bucket"], location=settings["region"])
        print(f"   ✅ Bucket {settings['bucket']} created")
    except gcp_exceptions.Conflict:
        print(f"   ✅ Bucket {settings['bucket']} already exists")
    except gcp_exceptions.GoogleAPICallError as e:
        print(f"   ❌ Failed to create bucket: {e}")
        sys.exit(1)
    print()

    # Step 2: static Bigtable instance
    print(f"📊 Creating Bigtable instance {settings['instance']}...")
    bigtable_client = bigtable.Client(project=settings["project"], admin=True)
    instance = bigtable_client.instance(
        settings["instance"],
        instance_type=enums.Instance.Type.PRODUCTION,
        labels={"created-by": "templit"},
    )
    if instance.exists():
        print(f"   ✅ Instance {settings['instance']} already exists")
    else:
        cluster = instance.cluster(
            f"{settings['instance'][:27]}-c1",
            location_id=settings["zone"],
            serve_nodes=1,
            default_storage_type=enums.StorageType.SSD,
        )
        try:
            instance.create(clusters=[cluster]).result(timeout=600)
            print(f"   ✅ Instance {settings['instance']} created")
        except gcp_exceptions.GoogleAPICallError as e:
            print(f"   ❌ Failed to create instance: {e}")
            sys.exit(1)
    print()

    # Step 3: verify
    print("✅ Verifying setup...")
    if storage_client.lookup_bucket(settings["bucket"]) is not None:
        print(f"   ✅ Bucket {settings['bucket']} exists")
    else:
        print(f"   ⚠️  Could not verify bucket {settings['bucket']}")

    if instance.exists():
        print(f"   ✅ Instance {settings['instance']} exists")
    else:
        print(f"   ⚠️  Could not verify instance {settings['instance']}")

    print()
    print("=" * 60)
    print("✅ Google Cloud setup completed successfully!")
    print("=" * 60)
    print()
    print("Next steps:")
    print("1. Add TEMPLATE_SPEC_AVRO_TO_BIGTABLE to your .env file")
    print("2. Run: templit validate-config")
    print("3. Run: pytest -m integration")
    print()


if __name__ == "__main__":
    setup_gcp()

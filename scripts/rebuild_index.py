#!/usr/bin/env python3
"""
Index Rebuild Utility
Re-embeds every stored vision and product into the embedding index, e.g. after
switching EMBED_PROVIDER or EMBED_MODEL_NAME. With VECTOR_PROVIDER=faiss the
rebuilt index is saved under FAISS_INDEX_DIR for the next service start.
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import validate_config, get_db_path, debug_enabled
from src.core.service import create_service


def main(service=None):
    """Rebuild both sub-indexes from the document store."""
    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    if service is None:
        service = create_service()

    print(f"Starting embedding index rebuild from {get_db_path()}...")
    if debug_enabled():
        print(f"  VECTOR_PROVIDER={os.getenv('VECTOR_PROVIDER', 'memory')} EMBED_PROVIDER={os.getenv('EMBED_PROVIDER', 'hash')}")
    counts = service.rebuild_index()

    for collection, indexed in counts.items():
        total = service.store.count_where(collection)
        print(f"✓ Re-embedded {indexed}/{total} {collection}")
        if indexed < total:
            print(f"WARNING: {total - indexed} {collection} could not be embedded")

    print("Rebuild complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

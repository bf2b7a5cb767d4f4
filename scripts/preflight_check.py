#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    os.environ.setdefault("NEAR_ENV", "testnet")

    import bikeshare.main
    print("Import bikeshare.main: OK")

    from bikeshare.near.config import get_config
    from bikeshare.settings import settings
    cfg = get_config(settings.NEAR_ENV)
    print(f"Network {cfg.networkId}: node={cfg.nodeUrl} bike={cfg.bikeContractName} ft={cfg.ftContractName}")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)

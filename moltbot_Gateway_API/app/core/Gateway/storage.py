from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from moltbot_Gateway_API.app.core.Metrics import increment_counter

from .models import BucketMounter, GatewayEnv, ProcessLogs, Sandbox
from .policy import GatewayPolicyConfig

_REQUIRED_CREDENTIALS = ("R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "CF_ACCOUNT_ID")


def r2_configured(env: GatewayEnv) -> bool:
    return all(env.get(k) for k in _REQUIRED_CREDENTIALS)


async def is_storage_mounted(sandbox: Sandbox, mount_path: str, check_delay_ms: int = 500) -> bool:
    """Ask the sandbox whether an s3fs mount already exists at ``mount_path``."""
    try:
        proc = await sandbox.start_process(f'mount | grep "s3fs on {mount_path}"')
        # The check is a one-shot shell command; give it a moment to finish
        await asyncio.sleep(max(0, check_delay_ms) / 1000.0)
        logs = ProcessLogs.coerce(await proc.get_logs())
        return "s3fs" in logs.stdout
    except Exception as e:
        logger.debug(f"Mount check failed: {e}")
        return False


async def mount_storage(
    sandbox: Sandbox,
    env: GatewayEnv,
    policy: Optional[GatewayPolicyConfig] = None,
) -> bool:
    """Mount the R2 backup bucket into the sandbox. Never raises.

    Returns True when the bucket is mounted (already or now), False when not
    configured or the mount failed. The start script restores from this
    bucket, so a missing mount only means starting without a backup.
    """
    policy = policy or GatewayPolicyConfig.from_settings()
    if not r2_configured(env):
        logger.info("R2 storage not configured (missing R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, or CF_ACCOUNT_ID)")
        return False

    if await is_storage_mounted(sandbox, policy.r2_mount_path, policy.mount_check_delay_ms):
        logger.info(f"R2 bucket already mounted at {policy.r2_mount_path}")
        return True

    if not isinstance(sandbox, BucketMounter):
        logger.warning("Sandbox does not support bucket mounts; continuing without R2 storage")
        return False

    account_id = str(env.get("CF_ACCOUNT_ID"))
    try:
        logger.info(f"Mounting R2 bucket {policy.r2_bucket} at {policy.r2_mount_path}")
        await sandbox.mount_bucket(
            policy.r2_bucket,
            policy.r2_mount_path,
            endpoint=f"https://{account_id}.r2.cloudflarestorage.com",
            credentials={
                "accessKeyId": str(env.get("R2_ACCESS_KEY_ID")),
                "secretAccessKey": str(env.get("R2_SECRET_ACCESS_KEY")),
            },
        )
        logger.info("R2 bucket mounted successfully")
        return True
    except Exception as e:
        # A concurrent request may have mounted it first
        if await is_storage_mounted(sandbox, policy.r2_mount_path, policy.mount_check_delay_ms):
            logger.info("R2 bucket is mounted despite error")
            return True
        logger.warning(f"Failed to mount R2 bucket (continuing without persistent storage): {e}")
        increment_counter("gateway_soft_failures_total", labels={"operation": "mount_storage"})
        return False

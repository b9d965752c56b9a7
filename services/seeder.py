# services/seeder.py
from __future__ import annotations

from deps import pwd_ctx
from models import User, ROLE_ADMIN, default_features
import services.config as config


async def seed_admin(logger=print) -> bool:
    """Create the bootstrap admin account when no admin exists yet."""
    if await User.filter(role=ROLE_ADMIN).exists():
        logger("[seed] admin present, skipping.")
        return False

    email = config.ADMIN_EMAIL.strip().lower()
    await User.create(
        email=email,
        hashed_password=pwd_ctx.hash(config.ADMIN_PASSWORD),
        name=config.ADMIN_NAME,
        role=ROLE_ADMIN,
        is_active=True,
        features=default_features(),
    )
    logger(f"[seed] created admin {email}")
    return True

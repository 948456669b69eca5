"""
Password hashing with bcrypt.

bcrypt is deliberately slow, so the async helpers run it in the
threadpool instead of on the event loop.
"""
import bcrypt
from starlette.concurrency import run_in_threadpool

DEFAULT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


def get_password_hash(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Generate a salted password hash using bcrypt."""
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=rounds)
    ).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """Check if provided password matches the stored hash."""
    if not password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # malformed hash or over-long password
        return False


async def verify_password_async(password: str, hashed_password: str) -> bool:
    return await run_in_threadpool(verify_password, password, hashed_password)

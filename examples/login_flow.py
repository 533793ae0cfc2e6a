import contextlib
import os
import secrets
import sys

# Add src to path for running directly
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

import anyio
from cryptography.fernet import Fernet
from pydantic import SecretStr

from coreason_oidc import CoreasonOIDCError, FernetCipher, LoginManager, ProviderSettings


async def main() -> None:
    """
    Walks through the authorization code flow against a generic OpenID Provider.
    Includes:
    - Authorization URL construction with a random state
    - Callback error check, code exchange and claims resolution
    - Encryption of the issued tokens into a storable bundle
    """
    print(">>> Starting Login Flow Example")

    settings = ProviderSettings(
        id="example-idp",
        client_id="my-client",
        client_secret=SecretStr("my-client-secret"),
        issuer_url="https://auth.example.com",
        redirect_uri="https://app.example.com/callback",
        scope=["openid", "email", "profile"],
        pii_salt=SecretStr("super-secret-salt-for-pii-hashing"),
        http_timeout=5.0,
    )
    cipher = FernetCipher([Fernet.generate_key().decode()])

    async with LoginManager(settings, cipher) as manager:
        state = secrets.token_urlsafe(32)
        try:
            url = await manager.authorization_url(state, prompt="login")
            print(f">>> Redirect the browser to: {url}")

            # The provider redirects back to the callback with ?code=...&state=...
            callback = f"{settings.redirect_uri}?code=example-code&state={state}"
            with anyio.fail_after(10):
                creds = await manager.complete(callback)
            print(f">>> Stored credentials for a subject; id_token issued: {bool(creds.initial_id_token)}")
        except CoreasonOIDCError as e:
            # In a real run without a server, discovery or the exchange fails
            print(f">>> Expected failure (no real server): {e}")


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        anyio.run(main)

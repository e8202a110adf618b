"""Example showing how a chat integration wires up the token broker."""

import asyncio
import logging
import sys

from tokenbroker import (
    AuthState,
    BrokerError,
    TokenBroker,
    get_store,
    load_config,
)
from tokenbroker.provider import HttpProviderClient


async def main():
    identity = sys.argv[1]
    code = sys.argv[2] if len(sys.argv) > 2 else None

    config = load_config()
    store = get_store(config=config)
    await store.open()

    async with HttpProviderClient(config.provider) as provider:
        broker = TokenBroker.from_config(config, store, provider)

        # The login route would place this in the authorization URL ...
        state = AuthState(identity=identity).encode()
        # ... and the callback route recovers the identity from it.
        identity = AuthState.decode(state, max_age=600).identity

        try:
            if code:
                record = await broker.exchange_code(identity, code)
                print(f"✅ Connected {identity}, token expires at {record.expires_at}")

            record = await broker.ensure_fresh(identity)
            print(f"🔑 Bearer token ready for {identity}: {record.access_token[:6]}...")
        except BrokerError as exc:
            print(f"❌ {exc.to_dict()}")

        print(f"📋 Status: {(await broker.status(identity)).model_dump()}")

    await store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())

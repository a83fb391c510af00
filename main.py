import asyncio
import logging
import signal

from dotenv import load_dotenv

from core.config import Settings, load_settings
from core.dispatcher import MessageDispatcher
from core.reasoner import OpenAIReasoner, load_instruction
from core.sessions import RuntimeContext, SessionFactory, SessionRegistry
from core.stream import MessageListener
from core.wallet import NETWORKS
from core.wallet_store import build_wallet_store

log = logging.getLogger("main")


def build_transport(settings: Settings):
    if settings.transport == "discord":
        from transports.discord_bot import DiscordTransport

        return DiscordTransport(settings.transport_token)
    from transports.telegram_bot import TelegramTransport

    return TelegramTransport(settings.transport_token)


async def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")
    logging.captureWarnings(True)

    settings = load_settings()
    logging.getLogger().setLevel(settings.log_level)
    network = NETWORKS.get(settings.network_id)
    if network is None:
        raise SystemExit(f"Unsupported NETWORK_ID: {settings.network_id}")
    log.info("Initializing bot on %s via %s", network.label, settings.transport)

    context = RuntimeContext(
        registry=SessionRegistry(max_sessions=settings.max_sessions),
        wallet_store=build_wallet_store(settings.wallet_store, settings.storage_dir),
    )
    factory = SessionFactory(
        context,
        wallet_config=settings.wallet_config(),
        instruction=load_instruction(network, settings.persona_path),
    )
    reasoner = OpenAIReasoner(api_key=settings.openai_api_key, model=settings.model)
    transport = build_transport(settings)
    dispatcher = MessageDispatcher(transport, factory, reasoner)

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    await transport.open()
    log.info("Agent listening as %s", transport.identity)
    listener = MessageListener(transport.subscribe(), dispatcher)
    try:
        await listener.run(stop_event)
    finally:
        await transport.shutdown()
        await reasoner.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

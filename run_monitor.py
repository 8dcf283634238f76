"""
Run WhatsApp Monitor - Direct launch script

Polls the Evolution API for new messages on every configured instance and
answers them with the mapped agent.

    WHATSAPP_INSTANCES="store-1:1,store-2:4" python run_monitor.py
"""
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger("run_monitor")

from agentdesk.agent_service import create_service
from agentdesk.dispatcher import InboundDispatcher, PollingTransport, StaticInstanceResolver
from agentdesk.gateway import EvolutionGateway


def main() -> int:
    resolver = StaticInstanceResolver.from_string(settings.whatsapp.instances)
    if not resolver.instances:
        logger.error("WHATSAPP_INSTANCES not set (expected 'instance:agent_id,...')")
        return 1

    service = create_service(settings)
    gateway = EvolutionGateway(config=settings.whatsapp)
    dispatcher = InboundDispatcher(service, gateway, resolver)
    poller = PollingTransport(dispatcher, gateway, resolver.instances, config=settings.whatsapp)

    logger.info(f"Monitoring instances: {', '.join(resolver.instances)} (Ctrl+C to stop)")
    try:
        asyncio.run(poller.run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        gateway.close()
        logger.info(f"Dispatcher stats: {dispatcher.stats}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

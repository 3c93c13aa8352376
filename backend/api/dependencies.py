"""Service container handed to the routes through FastAPI dependencies."""

from dataclasses import dataclass

from fastapi import Request

from api.websocket import BrowserEventHub
from directory.client import DirectoryClient
from discovery.refresh import RefreshBus
from discovery.service import DiscoveryAggregator
from messaging.channel import MessagingChannel
from messaging.chat import ChatSession
from transfer.coordinator import TransferCoordinator
from transfer.upload import UploadWorkflow


@dataclass
class ClientServices:
    directory: DirectoryClient
    refresh_bus: RefreshBus
    discovery: DiscoveryAggregator
    transfers: TransferCoordinator
    uploads: UploadWorkflow
    channel: MessagingChannel
    chat: ChatSession
    events: BrowserEventHub

    @classmethod
    def build(
        cls,
        directory: DirectoryClient | None = None,
        channel: MessagingChannel | None = None,
    ) -> "ClientServices":
        """Construct and wire every component; each owns its own state."""
        directory = directory or DirectoryClient()
        channel = channel or MessagingChannel()
        refresh_bus = RefreshBus()
        discovery = DiscoveryAggregator(directory)
        events = BrowserEventHub()
        chat = ChatSession(channel)

        refresh_bus.subscribe(discovery.schedule_refresh)
        refresh_bus.subscribe(events.inventory_changed)
        discovery.on_update(events.index_updated)
        chat.on_message(events.chat_message)
        channel.on_state_change(events.chat_connection)

        return cls(
            directory=directory,
            refresh_bus=refresh_bus,
            discovery=discovery,
            transfers=TransferCoordinator(directory, refresh_bus),
            uploads=UploadWorkflow(directory, refresh_bus),
            channel=channel,
            chat=chat,
            events=events,
        )

    async def shutdown(self) -> None:
        await self.chat.stop()
        await self.directory.aclose()


def get_services(request: Request) -> ClientServices:
    return request.app.state.services

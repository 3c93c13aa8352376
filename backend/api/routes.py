"""REST API routes for PeerDesk."""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from api.dependencies import ClientServices, get_services
from directory.models import PeerId
from errors import PeerDeskError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# --- Health ---

@router.get("/health")
async def backend_health(services: ClientServices = Depends(get_services)):
    """Pre-flight check that the remote backend answers."""
    try:
        live = await services.directory.check_liveness()
    except PeerDeskError as e:
        return {"live": False, "detail": e.message}
    return {"live": live, "detail": None}


# --- Peers ---

class RegisterBody(BaseModel):
    ip: str


@router.post("/peers")
async def register_peer(body: RegisterBody, services: ClientServices = Depends(get_services)):
    peer = await services.directory.register_peer(body.ip)
    services.refresh_bus.publish()
    return {"peer": peer.model_dump()}


@router.get("/peers")
async def list_peers(services: ClientServices = Depends(get_services)):
    peers = await services.directory.list_peers()
    return {"peers": [p.model_dump() for p in peers]}


@router.get("/peers/{peer_id}/files")
async def list_peer_files(peer_id: str, services: ClientServices = Depends(get_services)):
    files = await services.directory.list_peer_files(peer_id)
    return {
        "files": [
            {**f.model_dump(), "url": services.directory.file_url(peer_id, f.filename)}
            for f in files
        ]
    }


# --- Files ---

@router.get("/files")
async def list_files(services: ClientServices = Depends(get_services)):
    files = await services.directory.list_files()
    return {"files": [f.model_dump() for f in files]}


@router.get("/files/{file_hash}/sources")
async def file_sources(file_hash: str, services: ClientServices = Depends(get_services)):
    peers = await services.directory.list_sources(file_hash)
    return {"hash": file_hash, "peers": [p.model_dump() for p in peers]}


@router.post("/files")
async def upload_file(
    peer_id: str = Form(...),
    file: UploadFile = File(...),
    services: ClientServices = Depends(get_services),
):
    content = await file.read()
    result = await services.uploads.upload(peer_id, file.filename, content)
    return result.model_dump()


# --- Discovery index ---

@router.get("/index")
async def get_index(services: ClientServices = Depends(get_services)):
    """Last committed peer -> files snapshot."""
    return {
        "index": services.discovery.index.model_dump(mode="json"),
        "refreshing": services.discovery.refreshing,
    }


@router.post("/index/refresh")
async def refresh_index(services: ClientServices = Depends(get_services)):
    index = await services.discovery.refresh()
    return {"index": index.model_dump(mode="json")}


# --- Transfer workflow ---

class PeerSelection(BaseModel):
    peer_id: PeerId


class FileSelection(BaseModel):
    filename: str


@router.get("/transfer")
async def transfer_state(services: ClientServices = Depends(get_services)):
    return services.transfers.state.model_dump(mode="json")


@router.put("/transfer/destination")
async def choose_destination(body: PeerSelection, services: ClientServices = Depends(get_services)):
    return services.transfers.select_destination(body.peer_id).model_dump(mode="json")


@router.put("/transfer/source")
async def choose_source(body: PeerSelection, services: ClientServices = Depends(get_services)):
    return services.transfers.select_source(body.peer_id).model_dump(mode="json")


@router.post("/transfer/next")
async def next_stage(services: ClientServices = Depends(get_services)):
    state = await services.transfers.advance()
    return state.model_dump(mode="json")


@router.post("/transfer/back")
async def previous_stage(services: ClientServices = Depends(get_services)):
    return services.transfers.back().model_dump(mode="json")


@router.post("/transfer/file")
async def choose_file(body: FileSelection, services: ClientServices = Depends(get_services)):
    ack = await services.transfers.select_file(body.filename)
    return {"message": ack, "state": services.transfers.state.model_dump(mode="json")}


@router.post("/transfer/reset")
async def reset_transfer(services: ClientServices = Depends(get_services)):
    return services.transfers.reset().model_dump(mode="json")


# --- Chat ---

class ChatConnectBody(BaseModel):
    peer_id: PeerId


class ChatSendBody(BaseModel):
    message: str
    recipients: list[PeerId]


def _chat_status(services: ClientServices) -> dict:
    return {
        "peer_id": services.channel.peer_id,
        "state": services.channel.state.value,
        "terminal": services.channel.exhausted,
    }


@router.get("/chat")
async def chat_status(services: ClientServices = Depends(get_services)):
    return _chat_status(services)


@router.post("/chat/connect")
async def chat_connect(body: ChatConnectBody, services: ClientServices = Depends(get_services)):
    await services.chat.start(body.peer_id)
    return _chat_status(services)


@router.post("/chat/disconnect")
async def chat_disconnect(services: ClientServices = Depends(get_services)):
    await services.chat.stop()
    return _chat_status(services)


@router.get("/chat/messages")
async def chat_messages(services: ClientServices = Depends(get_services)):
    return {"messages": [m.model_dump(mode="json", by_alias=True) for m in services.chat.messages()]}


@router.post("/chat/messages")
async def send_chat_message(body: ChatSendBody, services: ClientServices = Depends(get_services)):
    sent = await services.chat.send(body.message, body.recipients)
    return {"sent": [m.model_dump(mode="json", by_alias=True) for m in sent]}

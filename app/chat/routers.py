import json
from contextlib import aclosing

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.core.dependencies import get_chat_service, get_current_user_id
from .service import ChatService
from .schemas import (
    SendMessageModel,
    SendMessageResponseModel,
    GetMessagesResponseModel,
    MarkReadResponseModel,
    GetConversationsResponseModel,
    UnreadCountResponseModel,
    UploadMediaResponseModel,
)


router = APIRouter()


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
async def send_message(
    data: SendMessageModel,
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Send a direct message to another user.

    There is no conversation entity: a conversation is simply every message
    between two users. New messages start unread.

    **Input**
    - `receiver_id`: UUID of the recipient
    - `text`: Message text (optional when `media_url` is given)
    - `media_url`: URL returned by `POST /chat/media` (optional)

    **Errors**
    - 400: Empty message or message to yourself
    - 401: Unauthorized
    - 500: Database error
    """
    message = await chat.send_message(
        me, str(data.receiver_id), text=data.text, media_url=data.media_url
    )
    return {"message": message}


@router.get(
    "/messages/{other_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
async def get_messages(
    other_id: str,
    mark_read: bool = True,
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Full history with `other_id`, oldest first.

    Opening a conversation marks the other user's messages as read in the
    background (pass `mark_read=false` to skip); the response does not wait
    for that write.
    """
    if mark_read:
        messages = await chat.open_conversation(me, other_id)
    else:
        messages = await chat.get_messages(me, other_id)
    return {"messages": messages}


@router.post(
    "/messages/{other_id}/read",
    response_model=MarkReadResponseModel,
    status_code=200,
)
async def mark_conversation_read(
    other_id: str,
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    return {"marked_read": await chat.receipts.mark_as_read(me, other_id)}


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
async def get_conversations(
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Conversation list for the authenticated user, newest first.

    **Returns**
    - `conversations`: one entry per counterpart
        - `counterpart_id`, `counterpart_name` ("Unknown User" if the profile lookup fails)
        - `last_message`: most recent message either way
        - `unread_count`: messages from them not yet read (0 if the count fails)
        - `age_label`: "3d ago", "5h ago", "12m ago" or "Just now"
    """
    return {"conversations": await chat.list_conversations(me)}


@router.get("/conversations/stream", status_code=200)
async def stream_conversations(
    request: Request,
    progressive: bool = False,
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Live conversation list as server-sent events.

    Every change to the messages table produces one `data:` event carrying
    the complete list. With `progressive=true`, partially enriched lists are
    sent while profile and unread lookups are still running.
    """

    async def events():
        async with aclosing(chat.watch_conversations(me, progressive=progressive)) as updates:
            async for conversations in updates:
                if await request.is_disconnected():
                    break
                payload = [c.model_dump(mode="json") for c in conversations]
                yield f"data: {json.dumps(payload)}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream")


@router.get("/unread/count", response_model=UnreadCountResponseModel, status_code=200)
async def total_unread_count(
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    return {"unread_count": await chat.receipts.total_unread_count(me)}


@router.post("/media", response_model=UploadMediaResponseModel, status_code=201)
async def upload_media(
    request: Request,
    filename: str = "image.jpg",
    me: str = Depends(get_current_user_id),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Upload a chat attachment. The raw request body is the file content.

    **Returns**
    - `media_url`: public URL to pass as `media_url` when sending a message
    """
    content = await request.body()
    content_type = request.headers.get("content-type", "application/octet-stream")
    url = await chat.upload_chat_media(me, filename, content, content_type)
    return {"media_url": url}

"""REST API for sounds and sound shares, polled by the playback service."""

from __future__ import annotations

import logging
from datetime import UTC
from email.utils import format_datetime

import uvicorn
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from timed_audio_queue.api.schemas import (
    DeletedResponse,
    HealthResponse,
    SoundCreateRequest,
    SoundResponse,
    SoundShareCreateRequest,
    SoundShareResponse,
    SoundUpdateRequest,
)
from timed_audio_queue.api.store import Sound, SoundShare, SoundStore
from timed_audio_queue.config import ApiServerConfig

logger = logging.getLogger(__name__)


def create_app(store: SoundStore | None = None) -> FastAPI:
    app = FastAPI(title="timed-audio-queue API", version="0.1.0")
    sounds = store or SoundStore()
    # Browser and mobile clients call the API from other origins.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Date"],
    )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/api/sounds", response_model=list[SoundResponse])
    def list_sounds(response: Response) -> list[SoundResponse]:
        # Players derive their clock offset from this header.
        response.headers["Date"] = format_datetime(sounds.now().astimezone(UTC), usegmt=True)
        return [_sound_response(item) for item in sounds.list_sounds()]

    @app.post("/api/sounds", response_model=SoundResponse, status_code=201)
    def create_sound(payload: SoundCreateRequest) -> SoundResponse:
        try:
            sound = sounds.create_sound(**payload.model_dump())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        logger.info("Created sound %s (%s)", sound.id, sound.file_name)
        return _sound_response(sound)

    @app.patch("/api/sounds/{sound_id}", response_model=SoundResponse)
    def update_sound(sound_id: str, payload: SoundUpdateRequest) -> SoundResponse:
        try:
            sound = sounds.update_sound(sound_id, payload.model_dump(exclude_unset=True))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _sound_response(sound)

    @app.delete("/api/sounds/{sound_id}", response_model=DeletedResponse)
    def delete_sound(sound_id: str) -> DeletedResponse:
        try:
            sounds.delete_sound(sound_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        logger.info("Deleted sound %s", sound_id)
        return DeletedResponse(id=sound_id)

    @app.get("/api/sound-shares", response_model=list[SoundShareResponse])
    def list_shares() -> list[SoundShareResponse]:
        return [_share_response(item) for item in sounds.list_shares()]

    @app.post("/api/sound-shares", response_model=SoundShareResponse, status_code=201)
    def create_share(payload: SoundShareCreateRequest) -> SoundShareResponse:
        try:
            share = sounds.create_share(sound_id=payload.sound_id, user_email=payload.user_email)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _share_response(share)

    @app.delete("/api/sound-shares/{share_id}", response_model=DeletedResponse)
    def delete_share(share_id: str) -> DeletedResponse:
        try:
            sounds.delete_share(share_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=exc.args[0]) from exc
        return DeletedResponse(id=share_id)

    return app


def _sound_response(sound: Sound) -> SoundResponse:
    return SoundResponse(
        id=sound.id,
        file_name=sound.file_name,
        file_url=sound.file_url,
        plays_completed=sound.plays_completed,
        total_plays=sound.total_plays,
        is_playing=sound.is_playing,
        created_at=sound.created_at,
        next_play_at=sound.next_play_at,
        playback_speeds=list(sound.playback_speeds),
        duration=sound.duration,
    )


def _share_response(share: SoundShare) -> SoundShareResponse:
    return SoundShareResponse(
        id=share.id,
        sound_id=share.sound_id,
        user_email=share.user_email,
        created_at=share.created_at,
    )


app = create_app()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(name)s: %(message)s")
    config = ApiServerConfig.from_env()
    # The sounds listing sets its own Date header from the store clock.
    uvicorn.run(app, host=config.host, port=config.port, date_header=False)


if __name__ == "__main__":
    main()

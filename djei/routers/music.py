"""
Music router — authenticated pass-through to the Spotify Web API.

Endpoints:
  POST /music/spotify/token                — App access token for the web player
  GET  /music/spotify/search               — Search the catalog
  GET  /music/spotify/tracks/{track_id}    — Track details
  GET  /music/spotify/recommendations      — Recommendations from seeds
"""

from typing import Literal

from fastapi import APIRouter, Depends, Path, Query

from djei.dependencies import get_catalog, get_current_identity
from djei.exceptions import ValidationError
from djei.schemas.music import CatalogTokenResponse
from djei.security import Identity
from djei.services.catalog_service import SpotifyCatalog

router = APIRouter()

MAX_SEEDS = 5


def _split(value: str | None) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()] if value else []


@router.post(
    "/token",
    response_model=CatalogTokenResponse,
    summary="Get a catalog access token",
)
async def get_token(
    identity: Identity = Depends(get_current_identity),
    catalog: SpotifyCatalog = Depends(get_catalog),
):
    return await catalog.access_token()


@router.get("/search", summary="Search the music catalog")
async def search(
    q: str = Query(min_length=1, max_length=200),
    type: Literal["track", "artist", "album", "playlist"] = Query("track"),
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0, le=1000),
    identity: Identity = Depends(get_current_identity),
    catalog: SpotifyCatalog = Depends(get_catalog),
):
    return await catalog.search(q, type=type, limit=limit, offset=offset)


@router.get("/tracks/{track_id}", summary="Get a track")
async def get_track(
    track_id: str = Path(pattern=r"^[A-Za-z0-9]{1,64}$"),
    identity: Identity = Depends(get_current_identity),
    catalog: SpotifyCatalog = Depends(get_catalog),
):
    return await catalog.get_track(track_id)


@router.get("/recommendations", summary="Get recommendations from seeds")
async def recommendations(
    seed_tracks: str | None = Query(None, description="Comma-separated track ids"),
    seed_artists: str | None = Query(None, description="Comma-separated artist ids"),
    seed_genres: str | None = Query(None, description="Comma-separated genres"),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    catalog: SpotifyCatalog = Depends(get_catalog),
):
    """Between one and five seeds in total, of any kind."""
    tracks, artists, genres = _split(seed_tracks), _split(seed_artists), _split(seed_genres)
    total = len(tracks) + len(artists) + len(genres)
    if not 1 <= total <= MAX_SEEDS:
        raise ValidationError(
            "Validation failed",
            details=[{"field": "seeds", "message": f"Provide between 1 and {MAX_SEEDS} seeds"}],
        )
    return await catalog.recommendations(
        seed_tracks=tracks,
        seed_artists=artists,
        seed_genres=genres,
        limit=limit,
    )

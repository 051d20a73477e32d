# Keychain API - RESTful endpoints for the local keychain
#
# API endpoints for keychain operations:
# - Initialize/unlock the keychain file
# - Set, retrieve and remove credentials per service
# - Export the serialized record and its checksum
# Every mutation is saved to disk before the response is sent.

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel, Field

from ..core import get_settings
from ..vault import (
    AuthenticationError,
    ChecksumMismatch,
    DecryptionError,
    Keychain,
    KeychainError,
    KeychainFile,
    NotInitialized,
    RecordFormatError,
    RollbackDetected,
)
from .security import verify_session_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/keychain", tags=["keychain"])

# Process-wide keychain (single user, local desktop service)
_keychain_file: Optional[KeychainFile] = None
_keychain: Optional[Keychain] = None

_ERROR_STATUS = {
    NotInitialized: status.HTTP_403_FORBIDDEN,
    RollbackDetected: status.HTTP_409_CONFLICT,
    DecryptionError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ChecksumMismatch: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    RecordFormatError: status.HTTP_400_BAD_REQUEST,
}


def _get_keychain_file() -> KeychainFile:
    global _keychain_file
    if _keychain_file is None:
        _keychain_file = KeychainFile(get_settings().keychain_path)
    return _keychain_file


def _get_keychain() -> Keychain:
    """Current keychain; an uninitialized one until init/unlock succeeds."""
    global _keychain
    if _keychain is None:
        _keychain = Keychain()
    return _keychain


def configure(keychain_file: Optional[KeychainFile] = None) -> None:
    """Point the API at a keychain file and drop any unlocked keychain."""
    global _keychain_file, _keychain
    _keychain_file = keychain_file
    _keychain = None


def _to_http(exc: KeychainError) -> HTTPException:
    code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=code, detail=str(exc))


def _save(keychain: Keychain) -> None:
    """Persist a mutation, or lock the keychain if the write fails.

    The in-memory keychain already holds the change, so on failure it is
    dropped; the next unlock reads whatever is on disk.
    """
    global _keychain
    try:
        _get_keychain_file().save(keychain)
    except OSError as e:
        logger.error("Failed to save keychain: %s", e)
        _keychain = None
        raise HTTPException(
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            detail="Keychain could not be saved; change discarded. Unlock again."
        )


# Request/Response Models
class MasterPasswordRequest(BaseModel):
    master_password: str = Field(..., min_length=1)


class SetEntryRequest(BaseModel):
    value: str


class KeychainStatusResponse(BaseModel):
    initialized: bool
    file_exists: bool


class EntryResponse(BaseModel):
    name: str
    value: str


class ExportResponse(BaseModel):
    record: str
    checksum: str


# Endpoints

@router.get("/status", response_model=KeychainStatusResponse)
async def get_keychain_status(token: str = Depends(verify_session_token)):
    """Whether a keychain file exists and whether it is unlocked."""
    return KeychainStatusResponse(
        initialized=_get_keychain().ready,
        file_exists=_get_keychain_file().exists(),
    )


@router.post("/initialize")
async def initialize_keychain(
    request: MasterPasswordRequest,
    token: str = Depends(verify_session_token)
):
    """Create a new keychain file with the given master password."""
    global _keychain
    try:
        _keychain = _get_keychain_file().create(request.master_password)
    except FileExistsError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Keychain already exists. Use /unlock instead."
        )

    return {"success": True, "message": "Keychain created"}


@router.post("/unlock")
async def unlock_keychain(
    request: MasterPasswordRequest,
    token: str = Depends(verify_session_token)
):
    """Load the keychain file with the master password."""
    global _keychain
    try:
        _keychain = _get_keychain_file().load(request.master_password)
    except FileNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Keychain does not exist. Initialize it first."
        )
    except KeychainError as e:
        raise _to_http(e)

    return {"success": True, "message": "Keychain unlocked"}


@router.put("/entries/{name:path}")
async def set_entry(
    name: str,
    request: SetEntryRequest,
    token: str = Depends(verify_session_token)
):
    """Store (or replace) the credential for a service."""
    keychain = _get_keychain()
    try:
        keychain.set(name, request.value)
        _save(keychain)
    except KeychainError as e:
        raise _to_http(e)

    return {"success": True}


@router.get("/entries/{name:path}", response_model=EntryResponse)
async def get_entry(name: str, token: str = Depends(verify_session_token)):
    """Retrieve the credential for a service."""
    try:
        value = _get_keychain().get(name)
    except KeychainError as e:
        raise _to_http(e)

    if value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No entry for this service"
        )

    return EntryResponse(name=name, value=value)


@router.delete("/entries/{name:path}")
async def remove_entry(name: str, token: str = Depends(verify_session_token)):
    """Remove the credential for a service."""
    keychain = _get_keychain()
    try:
        removed = keychain.remove(name)
        if removed:
            _save(keychain)
    except KeychainError as e:
        raise _to_http(e)

    return {"removed": removed}


@router.get("/export", response_model=ExportResponse)
async def export_keychain(token: str = Depends(verify_session_token)):
    """Serialized record plus the checksum to keep alongside it."""
    try:
        record, checksum = _get_keychain().dump()
    except KeychainError as e:
        raise _to_http(e)

    return ExportResponse(record=record, checksum=checksum)

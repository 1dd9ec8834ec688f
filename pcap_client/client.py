from pathlib import Path
from typing import Any

import requests

DEFAULT_SERVER_URL = "http://localhost:8000"
API_PREFIX = "/api/v1/pcap"


def _headers(api_key: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"} if api_key else {}


def _error(action: str, e: requests.exceptions.RequestException) -> RuntimeError:
    response = getattr(e, "response", None)
    if response is not None:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        if detail:
            return RuntimeError(f"Error {action}: {response.status_code} {detail}")
    return RuntimeError(f"Error {action}: {e}")


def submit_fixed(
    query: dict[str, Any],
    server_url: str = DEFAULT_SERVER_URL,
    api_key: str | None = None,
) -> dict[str, Any]:
    """
    Submit a fixed filter query and return the job status immediately.

    Args:
        query: Request body in wire format (ipSrcAddr, startTimeMs, ...)
        server_url: Base URL of the pcap server
        api_key: API key for authentication

    Returns:
        dict: Status with jobId, jobStatus, description, percentComplete

    Raises:
        RuntimeError: If submission fails due to network or server error
    """
    try:
        response = requests.post(
            f"{server_url}{API_PREFIX}/fixed",
            json=query,
            headers=_headers(api_key),
            timeout=30,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise _error("submitting query", e) from e


def get_status(
    job_id: str, server_url: str = DEFAULT_SERVER_URL, api_key: str | None = None
) -> dict[str, Any] | None:
    """
    Get the status of a job.

    Returns:
        Status dict, or None if the server doesn't know the job

    Raises:
        RuntimeError: If the request fails for any other reason
    """
    try:
        response = requests.get(
            f"{server_url}{API_PREFIX}/{job_id}",
            headers=_headers(api_key),
            timeout=30,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise _error("fetching job status", e) from e


def list_jobs(
    server_url: str = DEFAULT_SERVER_URL, api_key: str | None = None
) -> list[dict[str, Any]]:
    """
    List the status of all jobs of the authenticated user.

    Raises:
        RuntimeError: If the request fails
    """
    try:
        response = requests.get(
            f"{server_url}{API_PREFIX}", headers=_headers(api_key), timeout=30
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise _error("listing jobs", e) from e


def kill_job(
    job_id: str, server_url: str = DEFAULT_SERVER_URL, api_key: str | None = None
) -> dict[str, Any] | None:
    """
    Kill a job.

    Returns:
        Status after the kill, or None if the server doesn't know the job

    Raises:
        RuntimeError: If the request fails for any other reason
    """
    try:
        response = requests.delete(
            f"{server_url}{API_PREFIX}/kill/{job_id}",
            headers=_headers(api_key),
            timeout=30,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise _error("killing job", e) from e


def get_pdml(
    job_id: str,
    page: int,
    server_url: str = DEFAULT_SERVER_URL,
    api_key: str | None = None,
) -> dict[str, Any] | None:
    """
    Get one result page decoded into packets, protos and fields.

    Decoding runs the decoder on the server, so this can take a while for
    large pages.

    Returns:
        Decoded document, or None if the job or page doesn't exist

    Raises:
        RuntimeError: If the request fails for any other reason
    """
    try:
        response = requests.get(
            f"{server_url}{API_PREFIX}/{job_id}/pdml",
            params={"page": page},
            headers=_headers(api_key),
            timeout=300,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        raise _error("decoding page", e) from e


def download_raw(
    job_id: str,
    page: int,
    destination: Path,
    server_url: str = DEFAULT_SERVER_URL,
    api_key: str | None = None,
) -> bool:
    """
    Download one result page as a pcap file.

    Returns:
        True if the page was written to destination, False if it doesn't exist

    Raises:
        RuntimeError: If the request fails for any other reason
    """
    try:
        with requests.get(
            f"{server_url}{API_PREFIX}/{job_id}/raw",
            params={"page": page},
            headers=_headers(api_key),
            stream=True,
            timeout=300,
        ) as response:
            if response.status_code == 404:
                return False
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    f.write(chunk)
        return True
    except requests.exceptions.RequestException as e:
        raise _error("downloading page", e) from e

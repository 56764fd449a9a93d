"""Commits display labels to labels.json in a GitHub repository."""

import base64
import json
import logging
from typing import Any

import httpx

logger = logging.getLogger("swipetree.tools.label_commit")

GITHUB_API = "https://api.github.com"


class LabelCommitError(Exception):
    """A failed read or write against the label document."""

    def __init__(self, message: str, status_code: int = 500, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        body = {"error": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class CommitConflictError(LabelCommitError):
    """The document changed between read and write (stale sha)."""


class CommitTransportError(LabelCommitError):
    """GitHub could not be reached or answered with an unexpected error."""


class LabelCommitClient:
    """Read-merge-write of ``{id: meta}`` records into a JSON document.

    One write attempt is made per commit; conflicts are raised, not retried.
    """

    def __init__(
        self,
        token: str,
        repo: str,
        branch: str = "main",
        path: str = "labels.json",
        client: httpx.AsyncClient | None = None,
    ):
        self.token = token
        self.repo = repo
        self.branch = branch
        self.path = path
        self._client = client

    @property
    def contents_url(self) -> str:
        return f"{GITHUB_API}/repos/{self.repo}/contents/{self.path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "User-Agent": "swipetree",
            "Accept": "application/vnd.github+json",
        }

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(method, self.contents_url, headers=self._headers(), **kwargs)
            async with httpx.AsyncClient(timeout=30.0) as client:
                return await client.request(method, self.contents_url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"GitHub request failed: {e}")
            raise CommitTransportError("GitHub request failed", status_code=502, detail=str(e)) from e

    async def read_labels(self) -> tuple[dict[str, Any], str | None]:
        """
        Fetch the current document.

        Returns:
            (labels, sha) - labels is {} and sha is None when the file does not exist yet
        """
        logger.debug(f"Reading {self.path} from {self.repo}")
        response = await self._request("GET", params={"ref": self.branch})

        if response.status_code == 404:
            logger.info(f"{self.path} not found in {self.repo}, starting empty")
            return {}, None
        if response.status_code != 200:
            logger.warning(f"GitHub read failed with status {response.status_code}")
            raise CommitTransportError("GitHub read failed", status_code=response.status_code, detail=response.text)

        current = response.json()
        sha = current.get("sha")
        try:
            raw = base64.b64decode(current.get("content", ""))
            labels = json.loads(raw.decode("utf-8"))
            if not isinstance(labels, dict):
                raise ValueError("labels document is not an object")
        except (ValueError, TypeError) as e:
            logger.warning(f"Could not decode {self.path}, treating as empty: {e}")
            labels = {}
        return labels, sha

    async def commit(self, person_id: str, meta: dict[str, Any]) -> dict[str, Any]:
        """Merge ``meta`` under ``person_id`` and write the document back."""
        labels, sha = await self.read_labels()
        labels[person_id] = meta

        content = base64.b64encode(json.dumps(labels, indent=2).encode("utf-8")).decode("ascii")
        payload = {
            "message": f"chore(labels): update {person_id}",
            "content": content,
            "branch": self.branch,
        }
        if sha:
            payload["sha"] = sha

        logger.info(f"Committing label for {person_id} to {self.repo}/{self.path}")
        response = await self._request("PUT", json=payload)

        if response.status_code in (409, 422) and sha:
            logger.warning(f"Label commit for {person_id} conflicted (status {response.status_code})")
            raise CommitConflictError("GitHub commit failed", status_code=500, detail=response.text)
        if response.status_code not in (200, 201):
            logger.warning(f"Label commit for {person_id} failed with status {response.status_code}")
            raise CommitTransportError("GitHub commit failed", status_code=500, detail=response.text)

        return {"ok": True}

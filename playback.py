"""Remote control and status polling for VLC's HTTP interface."""
from __future__ import annotations

import html
import logging
import math
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, Optional, Union

import requests


LOGGER = logging.getLogger(__name__)


DEFAULT_VLC_URL = 'http://localhost:8081/requests/status.xml'
DEFAULT_TIMEOUT = 5.0
DISCONNECTED = 'disconnected'

# The status document is scraped field by field. VLC hands back partial or
# empty documents while idle or switching items, so each field has its own
# pattern and its own default.
_VOLUME_RE = re.compile(r'<volume>\s*(-?\d+(?:\.\d+)?)\s*</volume>')
_POSITION_RE = re.compile(r'<position>\s*(-?\d+(?:\.\d+)?(?:[eE]-?\d+)?)\s*</position>')
_TIME_RE = re.compile(r'<time>\s*(\d+)\s*</time>')
_LENGTH_RE = re.compile(r'<length>\s*(\d+)\s*</length>')
_STATE_RE = re.compile(r'<state>\s*([A-Za-z_]+)\s*</state>')
_FULLSCREEN_RE = re.compile(r'<fullscreen>\s*([A-Za-z0-9]+)\s*</fullscreen>')
_FILENAME_RE = re.compile(r'<info\s+name=["\']filename["\']\s*>(.*?)</info>', re.DOTALL)


def extract_number(document: Optional[str], pattern: re.Pattern, default: float = 0.0) -> float:
    match = pattern.search(document or '')
    if not match:
        return default
    try:
        return float(match.group(1))
    except ValueError:
        return default


def extract_volume(document: Optional[str], default: int = 0) -> int:
    return int(extract_number(document, _VOLUME_RE, default))


def extract_position(document: Optional[str], default: float = 0.0) -> float:
    return extract_number(document, _POSITION_RE, default)


def extract_time(document: Optional[str], default: int = 0) -> int:
    return int(extract_number(document, _TIME_RE, default))


def extract_length(document: Optional[str], default: int = 0) -> int:
    return int(extract_number(document, _LENGTH_RE, default))


def extract_state(document: Optional[str], default: str = DISCONNECTED) -> str:
    match = _STATE_RE.search(document or '')
    return match.group(1).lower() if match else default


def extract_fullscreen(document: Optional[str], default: bool = False) -> bool:
    match = _FULLSCREEN_RE.search(document or '')
    if not match:
        return default
    return match.group(1).lower() in ('true', '1')


def extract_filename(document: Optional[str], default: str = '') -> str:
    match = _FILENAME_RE.search(document or '')
    if not match:
        return default
    return html.unescape(match.group(1).strip())


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_volume(raw: Union[int, float]) -> str:
    """VLC volume (0-255) as a percentage string."""
    return '%d%%' % _round_half_up(raw / 255 * 100)


def calculate_position(raw: Union[int, float]) -> str:
    return '%d%%' % _round_half_up(raw * 100)


def calculate_time(seconds: Union[int, float]) -> str:
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return '%d:%d' % (minutes, secs)


@dataclass
class PlaybackStatus:
    state: str = DISCONNECTED
    volume: str = '0%'
    position: str = '0%'
    elapsed_time: str = '0:0'
    total_time: str = '0:0'
    fullscreen: bool = False
    current_name: str = ''
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            'state': self.state,
            'volume': self.volume,
            'position': self.position,
            'elapsedTime': self.elapsed_time,
            'totalTime': self.total_time,
            'fullscreen': self.fullscreen,
            'currentName': self.current_name,
            'error': self.error,
        }


def parse_status(document: Optional[str]) -> PlaybackStatus:
    return PlaybackStatus(
        state=extract_state(document),
        volume=calculate_volume(extract_volume(document)),
        position=calculate_position(extract_position(document)),
        elapsed_time=calculate_time(extract_time(document)),
        total_time=calculate_time(extract_length(document)),
        fullscreen=extract_fullscreen(document),
        current_name=extract_filename(document),
    )


@dataclass
class CommandResult:
    command: str
    ok: bool
    acknowledgment: str = ''
    error: Optional[str] = None


def _media_uri(target: str) -> str:
    if '://' in target:
        return target
    path = PurePath(target)
    if path.is_absolute():
        return path.as_uri()
    return 'file:///' + target.lstrip('/')


class PlaybackController:
    def __init__(
        self,
        url: str = DEFAULT_VLC_URL,
        password: str = '',
        timeout: float = DEFAULT_TIMEOUT,
        seek_step: int = 10,
        volume_step: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.password = password
        self.timeout = timeout
        self.seek_step = seek_step
        self.volume_step = volume_step
        self.session = session or requests.Session()

    def _request(self, params: Dict[str, str]) -> requests.Response:
        # VLC uses HTTP basic auth with an empty user name.
        resp = self.session.get(self.url, params=params, auth=('', self.password), timeout=self.timeout)
        resp.raise_for_status()
        return resp

    def _command(self, command: str, **params: str) -> CommandResult:
        query = {'command': command}
        query.update(params)
        try:
            resp = self._request(query)
        except requests.RequestException as exc:
            LOGGER.warning("VLC command %s failed: %s", command, exc)
            return CommandResult(command=command, ok=False, error=str(exc))
        LOGGER.info("VLC command %s acknowledged (%d bytes)", command, len(resp.text))
        LOGGER.debug("VLC response: %s", resp.text)
        return CommandResult(command=command, ok=True, acknowledgment=resp.text)

    def play(self, target: str) -> CommandResult:
        return self._command('in_play', input=_media_uri(target))

    def pause(self) -> CommandResult:
        return self._command('pl_pause')

    def stop(self) -> CommandResult:
        return self._command('pl_stop')

    def volume_up(self, step: Optional[int] = None) -> CommandResult:
        return self._command('volume', val='+%d' % (step or self.volume_step))

    def volume_down(self, step: Optional[int] = None) -> CommandResult:
        return self._command('volume', val='-%d' % (step or self.volume_step))

    def seek_forward(self, seconds: Optional[int] = None) -> CommandResult:
        return self._command('seek', val='+%d' % (seconds or self.seek_step))

    def seek_backward(self, seconds: Optional[int] = None) -> CommandResult:
        return self._command('seek', val='-%d' % (seconds or self.seek_step))

    def query_status(self) -> PlaybackStatus:
        """Current player status; never raises, falls back to defaults."""
        try:
            resp = self._request({})
            return parse_status(resp.text)
        except requests.RequestException as exc:
            LOGGER.warning("VLC status request failed: %s", exc)
            return PlaybackStatus(error=str(exc))
        except Exception as exc:  # pragma: no cover - defensive
            LOGGER.exception("Unexpected failure reading VLC status")
            return PlaybackStatus(error=str(exc))

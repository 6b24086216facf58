import base64

import httpx
import pytest
from fastapi.testclient import TestClient

from transcoder_gateway.configs import settings
from transcoder_gateway.const import OutputFormat
from transcoder_gateway.converter.acquire import InputAcquirer
from transcoder_gateway.converter.service import ConversionService
from transcoder_gateway.main import app
from transcoder_gateway.routes.convert import get_conversion_service, get_input_acquirer

API_KEY = "test-api-key"
HEADERS = {"apikey": API_KEY}


@pytest.fixture
def gateway(monkeypatch, make_runner):
    """
    Factory fixture returning a TestClient whose conversions go to a RecordingRunner.

    Usage:
        def test_something(gateway):
            client, runner = gateway(stdout=b"...")
    """
    monkeypatch.setattr(settings, "api_key", API_KEY)
    monkeypatch.setattr(settings, "cors_allow_origins", "*")
    fetched_urls = []

    def handler(request: httpx.Request) -> httpx.Response:
        fetched_urls.append(str(request.url))
        return httpx.Response(200, content=b"GIF89a-remote")

    def _make(**outcome):
        runner = make_runner(**outcome)
        app.dependency_overrides[get_conversion_service] = lambda: ConversionService(runner)
        app.dependency_overrides[get_input_acquirer] = lambda: InputAcquirer(
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        return TestClient(app), runner, fetched_urls

    yield _make
    app.dependency_overrides.clear()


def test_health_needs_no_key(gateway):
    client, _, _ = gateway()

    assert client.get("/health").json() == {"status": "healthy"}


def test_missing_api_key_is_rejected(gateway):
    client, runner, _ = gateway()

    response = client.post("/process-audio", data={"base64": base64.b64encode(b"audio").decode()})

    assert response.status_code == 401
    assert response.json() == {"error": "API key not provided"}
    assert runner.calls == []


def test_wrong_api_key_is_rejected(gateway):
    client, _, _ = gateway()

    response = client.post("/process-audio", headers={"apikey": "nope"}, data={"base64": "YXVkaW8="})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid API key"}


def test_unconfigured_api_key_is_a_server_error(gateway, monkeypatch):
    client, _, _ = gateway()
    monkeypatch.setattr(settings, "api_key", None)

    response = client.post("/process-audio", headers=HEADERS, data={"base64": "YXVkaW8="})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


def test_process_audio_defaults_to_compact_profile(gateway):
    client, runner, _ = gateway(stdout=b"OggS-opus")

    response = client.post("/process-audio", headers=HEADERS, data={"base64": base64.b64encode(b"audio").decode()})

    assert response.status_code == 200
    assert response.json() == {
        "duration": 5,
        "audio": base64.b64encode(b"OggS-opus").decode(),
        "format": "ogg",
    }
    plan, payload, input_format = runner.calls[0]
    assert plan.output_format is OutputFormat.OGG
    assert payload == b"audio"
    assert input_format == "ogg"


def test_process_audio_with_upload_and_output_format(gateway):
    client, runner, _ = gateway(stdout=b"ID3")

    response = client.post(
        "/process-audio",
        headers=HEADERS,
        files={"file": ("voice.ogg", b"OggS-upload", "audio/ogg")},
        data={"output_format": "mp3"},
    )

    assert response.status_code == 200
    assert response.json()["format"] == "mp3"
    assert runner.calls[0][0].output_format is OutputFormat.MP3
    assert runner.calls[0][1] == b"OggS-upload"


def test_process_audio_unknown_format_rejected_in_strict_mode(gateway, monkeypatch):
    client, runner, _ = gateway()
    monkeypatch.setattr(settings, "strict_output_formats", True)

    response = client.post("/process-audio", headers=HEADERS, data={"base64": "YXVkaW8=", "output_format": "mp33"})

    assert response.status_code == 400
    assert response.json()["stage"] == "dispatch"
    assert runner.calls == []


def test_process_audio_without_input(gateway):
    client, runner, _ = gateway()

    response = client.post("/process-audio", headers=HEADERS, data={"output_format": "mp3"})

    assert response.status_code == 400
    assert response.json() == {"error": "No file, base64 or URL provided", "stage": "acquisition"}
    assert runner.calls == []


def test_process_audio_with_empty_upload(gateway):
    client, runner, _ = gateway()

    response = client.post("/process-audio", headers=HEADERS, files={"file": ("empty.ogg", b"", "audio/ogg")})

    assert response.status_code == 400
    assert response.json()["stage"] == "acquisition"
    assert runner.calls == []


LARGE_MEDIA = bytes(range(256)) * 8 * 1024


def test_process_audio_accepts_large_urlencoded_base64(gateway):
    client, runner, _ = gateway(stdout=b"ID3")

    response = client.post(
        "/process-audio",
        headers=HEADERS,
        data={"base64": base64.b64encode(LARGE_MEDIA).decode(), "output_format": "mp3"},
    )

    assert response.status_code == 200
    assert runner.calls[0][1] == LARGE_MEDIA
    assert runner.calls[0][0].output_format is OutputFormat.MP3


def test_process_audio_accepts_large_multipart_base64(gateway):
    client, runner, _ = gateway(stdout=b"ID3")

    response = client.post(
        "/process-audio",
        headers=HEADERS,
        files={"base64": (None, base64.b64encode(LARGE_MEDIA).decode()), "output_format": (None, "mp3")},
    )

    assert response.status_code == 200
    assert runner.calls[0][1] == LARGE_MEDIA
    assert runner.calls[0][0].output_format is OutputFormat.MP3


@pytest.mark.parametrize("endpoint", ["/process-audio", "/gif-to-mp4", "/video-to-mp4", "/image-to-png"])
def test_base64_beyond_input_limit_is_rejected(gateway, monkeypatch, endpoint):
    client, runner, _ = gateway()
    monkeypatch.setattr(settings, "max_input_mb", 1)

    response = client.post(endpoint, headers=HEADERS, data={"base64": base64.b64encode(LARGE_MEDIA).decode()})

    assert response.status_code == 413
    assert response.json()["stage"] == "acquisition"
    assert runner.calls == []


def test_malformed_multipart_body_is_an_acquisition_error(gateway):
    client, runner, _ = gateway()

    response = client.post(
        "/video-to-mp4", headers={**HEADERS, "Content-Type": "multipart/form-data"}, content=b"--x\r\n"
    )

    assert response.status_code == 400
    assert response.json()["stage"] == "acquisition"
    assert runner.calls == []


def test_process_failure_hides_diagnostics_by_default(gateway):
    client, _, _ = gateway(stdout=b"", diagnostics="Invalid data found", exit_succeeded=False)

    response = client.post("/process-audio", headers=HEADERS, data={"base64": "YXVkaW8="})

    assert response.status_code == 500
    assert response.json() == {"error": "Transcoder exited with status 1", "stage": "process"}


def test_process_failure_exposes_diagnostics_when_enabled(gateway, monkeypatch):
    client, _, _ = gateway(stdout=b"", diagnostics="Invalid data found", exit_succeeded=False)
    monkeypatch.setattr(settings, "expose_diagnostics", True)

    response = client.post("/process-audio", headers=HEADERS, data={"base64": "YXVkaW8="})

    assert response.json()["details"] == "Invalid data found"


def test_gif_to_mp4_from_json_url(gateway):
    client, runner, fetched_urls = gateway(stdout=b"ftyp-mp4")

    response = client.post("/gif-to-mp4", headers=HEADERS, json={"url": "https://media.example.com/cat.gif"})

    assert response.status_code == 200
    assert response.json() == {"video": base64.b64encode(b"ftyp-mp4").decode(), "format": "mp4"}
    assert fetched_urls == ["https://media.example.com/cat.gif"]
    plan, payload, input_format = runner.calls[0]
    assert plan.output_format is OutputFormat.GIF_MP4
    assert payload == b"GIF89a-remote"
    assert input_format == "gif"


def test_gif_to_mp4_form_url_beats_query_url(gateway):
    client, _, fetched_urls = gateway(stdout=b"ftyp-mp4")

    response = client.post(
        "/gif-to-mp4?url=https://media.example.com/query.gif",
        headers=HEADERS,
        data={"url": "https://media.example.com/form.gif"},
    )

    assert response.status_code == 200
    assert fetched_urls == ["https://media.example.com/form.gif"]


def test_gif_to_mp4_query_url(gateway):
    client, _, fetched_urls = gateway(stdout=b"ftyp-mp4")

    response = client.post("/gif-to-mp4?url=https://media.example.com/query.gif", headers=HEADERS)

    assert response.status_code == 200
    assert fetched_urls == ["https://media.example.com/query.gif"]


def test_gif_to_mp4_from_upload(gateway):
    client, runner, fetched_urls = gateway(stdout=b"ftyp-mp4")

    response = client.post("/gif-to-mp4", headers=HEADERS, files={"file": ("cat.gif", b"GIF89a-upload", "image/gif")})

    assert response.status_code == 200
    assert fetched_urls == []
    assert runner.calls[0][1] == b"GIF89a-upload"


def test_video_to_mp4(gateway):
    client, runner, _ = gateway(stdout=b"ftyp-mp4")

    response = client.post(
        "/video-to-mp4", headers=HEADERS, files={"file": ("clip.mov", b"moov", "video/quicktime")}, data={"input_format": "mov"}
    )

    assert response.status_code == 200
    assert response.json()["format"] == "mp4"
    assert runner.calls[0][0].output_format is OutputFormat.VIDEO_MP4
    assert runner.calls[0][2] == "mov"


def test_image_to_png(gateway):
    client, runner, _ = gateway(stdout=b"\x89PNG")

    response = client.post("/image-to-png", headers=HEADERS, data={"base64": base64.b64encode(b"JFIF").decode()})

    assert response.status_code == 200
    assert response.json() == {"image": base64.b64encode(b"\x89PNG").decode(), "format": "png"}
    assert runner.calls[0][0].output_format is OutputFormat.PNG


def test_disallowed_origin_is_rejected(gateway, monkeypatch):
    client, runner, _ = gateway()
    monkeypatch.setattr(settings, "cors_allow_origins", "https://app.example.com")

    response = client.post(
        "/process-audio", headers={**HEADERS, "Origin": "https://evil.example.com"}, data={"base64": "YXVkaW8="}
    )

    assert response.status_code == 403
    assert runner.calls == []


def test_allowed_origin_from_referer(gateway, monkeypatch):
    client, _, _ = gateway()
    monkeypatch.setattr(settings, "cors_allow_origins", "https://app.example.com, https://other.example.com")

    response = client.post(
        "/process-audio",
        headers={**HEADERS, "Referer": "https://app.example.com/upload?step=2"},
        data={"base64": "YXVkaW8="},
    )

    assert response.status_code == 200


def test_health_is_exempt_from_origin_check(gateway, monkeypatch):
    client, _, _ = gateway()
    monkeypatch.setattr(settings, "cors_allow_origins", "https://app.example.com")

    assert client.get("/health", headers={"Origin": "https://evil.example.com"}).status_code == 200

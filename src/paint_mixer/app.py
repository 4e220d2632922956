from __future__ import annotations

import logging
import math
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Mapping

from flask import Flask, current_app, jsonify, render_template, request

from .formula import (
    GLASS_THICKNESSES,
    MixConstraints,
    Unit,
    normalize_formula,
    preview_color,
    validate_quantity,
)
from .palette import BASE_COLORS, DEFAULT_TARGET, TARGET_COLORS, TargetColor, canon_hex, custom_color
from .provider import (
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    FormulaProvider,
    GeminiFormulaProvider,
    ProviderError,
)
from .sampler import DecodeError, ImageSampler
from .sessions import SessionRegistry

log = logging.getLogger(__name__)

DEFAULTS: Mapping[str, Any] = {
    "GEMINI_API_KEY": None,
    "GEMINI_MODEL": DEFAULT_MODEL,
    "GEMINI_TEMPERATURE": DEFAULT_TEMPERATURE,
    "MAX_UPLOAD_BYTES": 16 * 1024 * 1024,
    "MAX_IMAGE_SESSIONS": 32,
    "DECODE_TIMEOUT": 30.0,
    "DEFAULT_QUANTITY": 1000,
    "DEFAULT_UNIT": "g",
    "PREVIEW_SPACE": "oklab",
}

_PROVIDER_KEY = "paint_mixer.provider"
_SESSIONS_KEY = "paint_mixer.sessions"


# ----------------------------- input parsing --------------------------------


def parse_number(val: Any, name: str) -> float:
    try:
        x = float(val)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number") from None
    if not math.isfinite(x):
        raise ValueError(f"{name} must be finite")
    return x


def parse_bool(val: Any, default: bool) -> bool:
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def parse_session(val: Any) -> int | None:
    if val in (None, ""):
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        raise ValueError("load must be an integer") from None


def parse_target(payload: Mapping[str, Any]) -> TargetColor:
    color = payload.get("color")
    if not isinstance(color, Mapping):
        raise ValueError("color must be an object with name and hex")
    hex_code = canon_hex(str(color.get("hex", "")))
    name = str(color.get("name") or "").strip() or custom_color(hex_code).name
    return TargetColor(name, hex_code)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _error(msg: str, status: int):
    return jsonify({"error": msg}), status


# ----------------------------- collaborators --------------------------------


def _sessions() -> SessionRegistry:
    return current_app.extensions[_SESSIONS_KEY]


def _sampler(sid: str) -> ImageSampler | None:
    try:
        return _sessions().get(sid)
    except KeyError:
        return None


def _provider(api_key: str | None) -> FormulaProvider:
    injected = current_app.extensions.get(_PROVIDER_KEY)
    if injected is not None:
        return injected
    key = api_key or current_app.config.get("GEMINI_API_KEY")
    if not key:
        raise ValueError("API key is required.")
    return GeminiFormulaProvider(
        key,
        current_app.config["GEMINI_MODEL"],
        float(current_app.config["GEMINI_TEMPERATURE"]),
    )


def _upload_bytes() -> bytes:
    f = request.files.get("image")
    return f.read() if f is not None else request.get_data()


def _load_into(sampler: ImageSampler) -> dict[str, Any]:
    """Resize to the posted container (if any), then block on the decode future."""
    w, h = request.values.get("width"), request.values.get("height")
    if w is not None and h is not None:
        sampler.resize(parse_number(w, "width"), parse_number(h, "height"))
    future = sampler.load(_upload_bytes())
    image = future.result(timeout=float(current_app.config["DECODE_TIMEOUT"]))
    return {
        "load": sampler.session,
        "width": image.width,
        "height": image.height,
        "fit": sampler.viewport.to_dict(),
    }


# ----------------------------- Flask app ----------------------------------


def create_app(
    config: Mapping[str, Any] | None = None, *, provider: FormulaProvider | None = None
) -> Flask:
    app = Flask(__name__, static_folder="static", template_folder="templates")
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    app.config.update(DEFAULTS)
    app.config.from_prefixed_env("PAINT_MIXER")
    if config:
        app.config.update(config)
    app.config["MAX_CONTENT_LENGTH"] = int(app.config["MAX_UPLOAD_BYTES"])

    app.extensions[_SESSIONS_KEY] = SessionRegistry(int(app.config["MAX_IMAGE_SESSIONS"]))
    if provider is not None:
        app.extensions[_PROVIDER_KEY] = provider

    @app.route("/")
    def index():
        return render_template(
            "index.html",
            targets=TARGET_COLORS,
            default_target=DEFAULT_TARGET,
            thicknesses=GLASS_THICKNESSES,
            default_quantity=app.config["DEFAULT_QUANTITY"],
            default_unit=Unit.parse(app.config["DEFAULT_UNIT"]).value,
        )

    @app.route("/api/palette")
    def palette():
        return jsonify(
            {
                "base": [c.to_dict() for c in BASE_COLORS],
                "targets": [c.to_dict() for c in TARGET_COLORS],
                "default": DEFAULT_TARGET.to_dict(),
            }
        )

    # -- image picker --

    @app.route("/api/images", methods=["POST"])
    def create_image_session():
        sid, sampler = _sessions().create()
        try:
            info = _load_into(sampler)
        except ValueError as e:
            _sessions().close(sid)
            status = 422 if isinstance(e, DecodeError) else 400
            return _error(str(e), status)
        except FutureTimeout:
            _sessions().close(sid)
            return _error("image decode timed out", 504)
        return jsonify({"session": sid, **info}), 201

    @app.route("/api/images/<sid>", methods=["PUT"])
    def replace_image(sid: str):
        sampler = _sampler(sid)
        if sampler is None:
            return _error(f"unknown session '{sid}'", 404)
        try:
            info = _load_into(sampler)
        except ValueError as e:
            status = 422 if isinstance(e, DecodeError) else 400
            return _error(str(e), status)
        except FutureTimeout:
            return _error("image decode timed out", 504)
        return jsonify({"session": sid, **info})

    @app.route("/api/images/<sid>/fit", methods=["POST"])
    def fit_image(sid: str):
        sampler = _sampler(sid)
        if sampler is None:
            return _error(f"unknown session '{sid}'", 404)
        body = _json_body()
        try:
            w = parse_number(body.get("width"), "width")
            h = parse_number(body.get("height"), "height")
        except ValueError as e:
            return _error(str(e), 400)
        return jsonify(sampler.resize(w, h).to_dict())

    @app.route("/api/images/<sid>/sample")
    def sample(sid: str):
        sampler = _sampler(sid)
        if sampler is None:
            return _error(f"unknown session '{sid}'", 404)
        try:
            x = parse_number(request.args.get("x"), "x")
            y = parse_number(request.args.get("y"), "y")
            load = parse_session(request.args.get("load"))
        except ValueError as e:
            return _error(str(e), 400)
        color = sampler.pointer_move(x, y, session=load)
        return jsonify({"color": color.to_dict() if color else None})

    @app.route("/api/images/<sid>/commit", methods=["POST"])
    def commit(sid: str):
        sampler = _sampler(sid)
        if sampler is None:
            return _error(f"unknown session '{sid}'", 404)
        body = _json_body()
        try:
            x = parse_number(body.get("x"), "x")
            y = parse_number(body.get("y"), "y")
            load = parse_session(body.get("load"))
        except ValueError as e:
            return _error(str(e), 400)
        color = sampler.click(x, y, session=load)
        if color is None:
            return _error("nothing to commit at that point", 409)
        _sessions().close(sid)
        return jsonify({"color": color.to_dict(), "target": custom_color(color.hex).to_dict()})

    @app.route("/api/images/<sid>", methods=["DELETE"])
    def dismiss(sid: str):
        try:
            cancelled = _sessions().close(sid)
        except KeyError:
            return _error(f"unknown session '{sid}'", 404)
        return jsonify({"cancelled": cancelled})

    # -- formulas --

    @app.route("/api/normalize", methods=["POST"])
    def normalize():
        body = _json_body()
        try:
            qty = validate_quantity(body.get("quantity"))
            unit = Unit.parse(body.get("unit") or app.config["DEFAULT_UNIT"])
        except ValueError as e:
            return _error(str(e), 400)
        raw = body.get("formula")
        result = normalize_formula(raw if isinstance(raw, dict) else {}, qty, unit)
        return jsonify(result.to_dict())

    @app.route("/api/formula", methods=["POST"])
    def formula():
        body = _json_body()
        try:
            target = parse_target(body)
            qty = validate_quantity(body.get("quantity"))
            unit = Unit.parse(body.get("unit") or app.config["DEFAULT_UNIT"])
            constraints = MixConstraints(
                compensate_for_glass=parse_bool(body.get("compensate_for_glass"), True),
                glass_thickness=int(body.get("glass_thickness", 5)),
            )
            provider = _provider(body.get("api_key"))
        except (TypeError, ValueError) as e:
            return _error(str(e), 400)

        try:
            raw = provider.request_formula(target, constraints)
        except ProviderError as e:
            return _error(str(e), 502)
        except Exception:
            log.exception("Formula request failed")
            return _error("internal error", 500)

        result = normalize_formula(raw, qty, unit)
        if result.is_empty:
            log.info("Provider returned no positive ingredients for %s", target.name)
        payload = result.to_dict()
        payload["target"] = target.to_dict()
        payload["preview"] = preview_color(result, app.config["PREVIEW_SPACE"])
        return jsonify(payload)

    return app


if __name__ == "__main__":
    create_app().run(debug=False, threaded=True)

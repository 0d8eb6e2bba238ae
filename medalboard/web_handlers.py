"""
Web route handlers for the festival medal board.
"""

import re
import secrets
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from aiohttp import web
from jinja2 import Environment, FileSystemLoader

from .errors import MedalBoardError, ValidationError
from .logger import get_logger
from .models import EventStatus, MedalType, User, parse_datetime
from .service import MedalBoard

log = get_logger("web")

TEMPLATES_PATH = Path(__file__).parent / "templates"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# JSON field -> ScoreSettings field
SETTINGS_FIELDS = {
    "goldPoints": "gold_points",
    "silverPoints": "silver_points",
    "bronzePoints": "bronze_points",
    "nonWinnerPoints": "non_winner_points",
    "noEntryPoints": "no_entry_points",
}

COLOR_PATTERN = re.compile(r"^(#[0-9a-fA-F]{3}|#[0-9a-fA-F]{6}|[a-zA-Z]{3,20})$")


class SessionRegistry:
    """In-process admin sessions keyed by an opaque cookie token."""

    def __init__(
        self,
        ttl_seconds: int = 86400,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, Tuple[int, float]] = {}

    def create(self, user_id: int) -> str:
        self._prune()
        token = secrets.token_urlsafe(32)
        self._sessions[token] = (user_id, time.time() + self.ttl_seconds)
        return token

    def resolve(self, token: Optional[str]) -> Optional[int]:
        """
        Look up the user id behind a session token.

        @param token: Cookie value, may be None
        @return: User id if the session exists and has not expired
        """
        if not token or token not in self._sessions:
            return None

        user_id, expires_at = self._sessions[token]
        if time.time() >= expires_at:
            del self._sessions[token]
            return None
        return user_id

    def drop(self, token: Optional[str]) -> None:
        if token:
            self._sessions.pop(token, None)

    def _prune(self) -> None:
        now = time.time()
        expired = [t for t, (_, expires_at) in self._sessions.items() if now >= expires_at]
        for token in expired:
            del self._sessions[token]


def json_error(
    status: int,
    message: str,
    **extra: Any,
) -> web.Response:
    return web.json_response({"message": message, **extra}, status=status)


def _field_error(field: str, message: str) -> ValidationError:
    return ValidationError([{"field": field, "message": message}])


def _parse_int(
    value: Any,
    field: str,
    minimum: Optional[int] = None,
) -> int:
    if isinstance(value, bool):
        raise _field_error(field, "must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise _field_error(field, "must be an integer") from None
    if isinstance(value, float) and value != number:
        raise _field_error(field, "must be an integer")
    if minimum is not None and number < minimum:
        raise _field_error(field, f"must be at least {minimum}")
    return number


def _parse_enum(
    value: Any,
    enum_type: Type[Enum],
    field: str,
) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise _field_error(field, f"must be one of {allowed}") from None


def _parse_name(
    data: Dict[str, Any],
    field: str = "name",
) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise _field_error(field, "is required")
    return value.strip()


def _parse_optional_str(
    data: Dict[str, Any],
    field: str,
) -> Optional[str]:
    value = data.get(field)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise _field_error(field, "must be a string")
    return value


def _parse_color(
    data: Dict[str, Any],
    field: str = "color",
) -> Optional[str]:
    # Rendered inside a style attribute, so only hex codes and colour names
    value = _parse_optional_str(data, field)
    if value is not None and not COLOR_PATTERN.match(value):
        raise _field_error(field, "must be a hex colour like #ff0000 or a colour name")
    return value


def _parse_date(
    value: Any,
    field: str,
) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise _field_error(field, "must be an ISO-8601 date") from None


def _path_id(
    request: web.Request,
    key: str = "id",
) -> int:
    try:
        return int(request.match_info[key])
    except ValueError:
        raise web.HTTPNotFound() from None


async def _read_json(request: web.Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        raise _field_error("body", "must be valid JSON") from None
    if not isinstance(data, dict):
        raise _field_error("body", "must be a JSON object")
    return data


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        board: MedalBoard,
        config: Any,
        templates_path: Path = TEMPLATES_PATH,
    ) -> None:
        self.board = board
        self.config = config
        self.cookie_name = config.get("session", "cookie_name")
        self.sessions = SessionRegistry(config.get("session", "ttl_seconds"))

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_path)),
            autoescape=True,
            auto_reload=False,
            cache_size=50,
        )

    @web.middleware
    async def error_middleware(
        self,
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """
        Map core failures onto JSON responses.

        @param request: Incoming request
        @param handler: Next handler in the chain
        @return: Handler response, or a JSON error response
        """
        try:
            return await handler(request)
        except ValidationError as e:
            return json_error(400, "Invalid request data", errors=e.errors)
        except web.HTTPException:
            raise
        except MedalBoardError as e:
            log.error("Request %s %s failed: %s", request.method, request.path, e)
            return json_error(500, str(e))
        except Exception:
            log.exception("Unhandled error in %s %s", request.method, request.path)
            return json_error(500, "Server error")

    @web.middleware
    async def session_middleware(
        self,
        request: web.Request,
        handler: Handler,
    ) -> web.StreamResponse:
        """Attach the acting admin (or None) to the request."""
        user: Optional[User] = None
        user_id = self.sessions.resolve(request.cookies.get(self.cookie_name))
        if user_id is not None:
            user = await self.board.get_user(user_id)
        request["user"] = user
        return await handler(request)

    def _require_admin(
        self,
        request: web.Request,
    ) -> User:
        user = request.get("user")
        if user is None:
            raise web.HTTPUnauthorized(
                text='{"message": "Not authorized"}',
                content_type="application/json",
            )
        return user

    # Pages

    async def web_index(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Public scoreboard page.

        @param _: Unused request parameter
        @return: HTTP response with rendered scoreboard
        """
        settings = await self.board.get_score_settings()

        template = self.jinja_env.get_template("scoreboard.html")
        html = template.render(
            title=self.config.get("festival_name"),
            team_scores=await self.board.get_team_scores(),
            medal_summary=await self.board.get_medal_summary(),
            event_results=await self.board.get_event_results(),
            last_updated=settings.last_updated,
            refresh_seconds=self.config.get("polling", "scoreboard_seconds"),
        )
        return web.Response(text=html, content_type="text/html")

    async def web_api_config(
        self,
        _: web.Request,
    ) -> web.Response:
        return web.json_response(self.config.public_settings())

    # Auth

    async def web_api_login(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Log in as the admin and set the session cookie.

        @param request: HTTP request with username and password in the JSON body
        @return: JSON response with the user, or 401 on bad credentials
        """
        data = await _read_json(request)
        username = data.get("username")
        password = data.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            return json_error(401, "Invalid credentials")

        user = await self.board.authenticate(username, password)
        if user is None:
            return json_error(401, "Invalid credentials")

        token = self.sessions.create(user.id)
        response = web.json_response({"success": True, "user": user.to_dict()})
        response.set_cookie(
            self.cookie_name,
            token,
            max_age=self.sessions.ttl_seconds,
            httponly=True,
            samesite="Lax",
        )
        log.info("Admin %s logged in", user.username)
        return response

    async def web_api_logout(
        self,
        request: web.Request,
    ) -> web.Response:
        self.sessions.drop(request.cookies.get(self.cookie_name))
        response = web.json_response({"success": True})
        response.del_cookie(self.cookie_name)
        return response

    async def web_api_session(
        self,
        request: web.Request,
    ) -> web.Response:
        user = request.get("user")
        if user is None:
            return web.json_response({"authenticated": False})
        return web.json_response({"authenticated": True, "user": user.to_dict()})

    # Teams

    async def web_api_teams(
        self,
        _: web.Request,
    ) -> web.Response:
        teams = await self.board.get_all_teams()
        return web.json_response([team.to_dict() for team in teams])

    async def web_api_create_team(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Create a team.

        The icon is an opaque reference produced by whatever handles uploads.

        @param request: HTTP request with name, icon and color in the JSON body
        @return: 201 with the team, or 400 if the name is taken
        """
        self._require_admin(request)
        data = await _read_json(request)

        team = await self.board.create_team(
            _parse_name(data),
            icon=_parse_optional_str(data, "icon"),
            color=_parse_color(data),
        )
        if team is None:
            return json_error(400, "A team with this name already exists.")
        return web.json_response(team.to_dict(), status=201)

    async def web_api_update_team(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        team_id = _path_id(request)
        data = await _read_json(request)

        fields: Dict[str, Any] = {}
        if "name" in data:
            fields["name"] = _parse_name(data)
        if "icon" in data:
            fields["icon"] = _parse_optional_str(data, "icon")
        if "color" in data:
            fields["color"] = _parse_color(data)

        if await self.board.get_team_by_id(team_id) is None:
            return json_error(404, "Team not found")

        team = await self.board.update_team(team_id, **fields)
        if team is None:
            return json_error(400, "A team with this name already exists.")
        return web.json_response(team.to_dict())

    async def web_api_delete_team(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        if await self.board.delete_team(_path_id(request)):
            return web.json_response({"success": True})
        return json_error(400, "Team could not be deleted. It may have associated medals.")

    # Categories

    async def web_api_categories(
        self,
        _: web.Request,
    ) -> web.Response:
        categories = await self.board.get_all_event_categories()
        return web.json_response([category.to_dict() for category in categories])

    async def web_api_create_category(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        data = await _read_json(request)

        category = await self.board.create_event_category(_parse_name(data))
        if category is None:
            return json_error(400, "A category with this name already exists.")
        return web.json_response(category.to_dict(), status=201)

    async def web_api_delete_category(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        if await self.board.delete_event_category(_path_id(request)):
            return web.json_response({"success": True})
        return json_error(400, "Category could not be deleted. It may have associated events.")

    # Events

    async def web_api_events(
        self,
        _: web.Request,
    ) -> web.Response:
        events = await self.board.get_all_events()
        return web.json_response([event.to_dict() for event in events])

    async def web_api_event_results(
        self,
        _: web.Request,
    ) -> web.Response:
        results = await self.board.get_event_results()
        return web.json_response([result.to_dict() for result in results])

    async def web_api_create_event(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Create an event.

        @param request: HTTP request with name, categoryId, eventDate and status
        @return: 201 with the event
        """
        self._require_admin(request)
        data = await _read_json(request)

        name = _parse_name(data)
        category_id = None
        if data.get("categoryId") is not None:
            category_id = _parse_int(data["categoryId"], "categoryId")
        event_date = _parse_date(data.get("eventDate"), "eventDate")
        status = _parse_enum(data.get("status", "UPCOMING"), EventStatus, "status")

        event = await self.board.create_event(
            name, category_id=category_id, event_date=event_date, status=status
        )
        return web.json_response(event.to_dict(), status=201)

    async def web_api_update_event_status(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        event_id = _path_id(request)
        data = await _read_json(request)
        status = _parse_enum(data.get("status"), EventStatus, "status")

        event = await self.board.update_event_status(event_id, status)
        if event is None:
            return json_error(404, "Event not found")
        return web.json_response(event.to_dict())

    async def web_api_record_results(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Record medals for an event and mark it completed.

        Body: ``{"placements": [{"teamId": 1, "medalType": "GOLD"}, ...]}``.
        Points come from the current score settings.

        @param request: HTTP request with placements in the JSON body
        @return: 201 with the stored medals, 404 for unknown event or team
        """
        self._require_admin(request)
        event_id = _path_id(request)
        data = await _read_json(request)

        entries = data.get("placements")
        if not isinstance(entries, list) or not entries:
            raise _field_error("placements", "must be a non-empty list")

        placements = {}
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise _field_error(f"placements[{index}]", "must be an object")
            team_id = _parse_int(entry.get("teamId"), f"placements[{index}].teamId")
            placements[team_id] = _parse_enum(
                entry.get("medalType"), MedalType, f"placements[{index}].medalType"
            )

        medals = await self.board.record_event_results(event_id, placements)
        if medals is None:
            return json_error(404, "Event or team not found")
        return web.json_response([medal.to_dict() for medal in medals], status=201)

    async def web_api_delete_event(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        if await self.board.delete_event(_path_id(request)):
            return web.json_response({"success": True})
        return json_error(400, "Event could not be deleted. It may have associated medals.")

    # Medals

    async def web_api_medals(
        self,
        _: web.Request,
    ) -> web.Response:
        medals = await self.board.get_all_medals()
        return web.json_response([medal.to_dict() for medal in medals])

    async def web_api_event_medals(
        self,
        request: web.Request,
    ) -> web.Response:
        medals = await self.board.get_medals_by_event_id(_path_id(request, "event_id"))
        return web.json_response([medal.to_dict() for medal in medals])

    async def web_api_create_medal(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Assign (or replace) the medal of a team for an event.

        @param request: HTTP request with eventId, teamId, medalType and optional points
        @return: 201 with the stored, unpublished medal
        """
        self._require_admin(request)
        data = await _read_json(request)

        event_id = _parse_int(data.get("eventId"), "eventId")
        team_id = _parse_int(data.get("teamId"), "teamId")
        medal_type = _parse_enum(data.get("medalType"), MedalType, "medalType")
        points = None
        if data.get("points") is not None:
            points = _parse_int(data["points"], "points", minimum=0)

        medal = await self.board.create_medal(event_id, team_id, medal_type, points)
        if medal is None:
            return json_error(404, "Event or team not found")
        return web.json_response(medal.to_dict(), status=201)

    async def web_api_delete_medal(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        if await self.board.delete_medal(_path_id(request)):
            return web.json_response({"success": True})
        return json_error(400, "Medal could not be deleted.")

    # Scoreboard and publishing

    async def web_api_scoreboard(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Public standings.

        @param _: Unused request parameter
        @return: JSON with teamScores, medalSummary and lastUpdated
        """
        team_scores = await self.board.get_team_scores()
        medal_summary = await self.board.get_medal_summary()
        settings = await self.board.get_score_settings()

        return web.json_response(
            {
                "teamScores": [score.to_dict() for score in team_scores],
                "medalSummary": medal_summary.to_dict(),
                "lastUpdated": settings.to_dict()["lastUpdated"],
            }
        )

    async def web_api_publications(
        self,
        _: web.Request,
    ) -> web.Response:
        publications = await self.board.get_all_publications()
        return web.json_response([p.to_dict() for p in publications])

    async def web_api_latest_publication(
        self,
        _: web.Request,
    ) -> web.Response:
        publication = await self.board.get_latest_publication()
        return web.json_response(publication.to_dict() if publication else None)

    async def web_api_score_settings(
        self,
        _: web.Request,
    ) -> web.Response:
        settings = await self.board.get_score_settings()
        return web.json_response(settings.to_dict())

    async def web_api_update_score_settings(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Update point values or the global published flag.

        @param request: HTTP request with any of the settings fields
        @return: JSON with the updated settings
        """
        self._require_admin(request)
        data = await _read_json(request)

        errors: List[Dict[str, str]] = []
        fields: Dict[str, Any] = {}
        for key, field in SETTINGS_FIELDS.items():
            if key in data:
                try:
                    fields[field] = _parse_int(data[key], key, minimum=0)
                except ValidationError as e:
                    errors.extend(e.errors)
        if "isPublished" in data:
            if isinstance(data["isPublished"], bool):
                fields["is_published"] = data["isPublished"]
            else:
                errors.append({"field": "isPublished", "message": "must be a boolean"})
        if errors:
            raise ValidationError(errors)

        settings = await self.board.update_score_settings(**fields)
        return web.json_response(settings.to_dict())

    async def web_api_publish_scores(
        self,
        request: web.Request,
    ) -> web.Response:
        user = self._require_admin(request)
        settings = await self.board.publish_scores(published_by=user.username)
        return web.json_response({"success": True, "settings": settings.to_dict()})

    async def web_api_unpublished_changes(
        self,
        request: web.Request,
    ) -> web.Response:
        self._require_admin(request)
        changes = await self.board.get_unpublished_changes()
        return web.json_response([medal.to_dict() for medal in changes])

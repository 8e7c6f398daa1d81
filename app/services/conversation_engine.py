"""Two-phase completion exchange with optional weather augmentation."""

import re
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from app.core.exceptions import AppException, ProtocolError, UpstreamError
from app.schemas.conversation_schema import ConversationTurn
from app.schemas.weather_schema import DataRequest, WeatherForecast
from app.services.weather_service import WeatherLookupClient

logger = structlog.get_logger()

SENTINEL_KEYWORD = "REQUIRES_DATA:"

SYSTEM_PROMPT_TEMPLATE = (
    "You are an expert meteorologist with access to external weather data.\n"
    "Always answer in {language} and format the answer as readable markdown.\n"
    "Today's date is {today}.\n"
    "When you need weather data to answer, reply with a single line in exactly "
    "this format: REQUIRES_DATA: city=[<city>], date=[<today|tomorrow|YYYY-MM-DD>]\n"
    "Do not invent data you do not have. Wait for the system to provide it "
    "before writing the final answer."
)

WEATHER_CONTEXT_TEMPLATE = "Weather data for {city} on {date}: {summary}"

_SENTINEL_PATTERN = re.compile(
    r"REQUIRES_DATA:\s*city\s*=\s*"
    r"(?:\[(?P<bracketed_city>[^\]\n]+)\]|(?P<city>[^,\n]+))"
    r"\s*,\s*date\s*=\s*"
    r"(?:\[(?P<bracketed_date>[^\]\n]+)\]|(?P<date>[^,\n]+))",
    re.IGNORECASE,
)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)

_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

WEATHER_CODE_DESCRIPTIONS: dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    56: "light freezing drizzle",
    57: "dense freezing drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    66: "light freezing rain",
    67: "heavy freezing rain",
    71: "slight snowfall",
    73: "moderate snowfall",
    75: "heavy snowfall",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "thunderstorm",
    96: "thunderstorm with slight hail",
    99: "thunderstorm with heavy hail",
}

UNKNOWN_CONDITION = "unknown condition"


def requires_data(reply: str) -> bool:
    """Whether a model reply carries the data-request sentinel."""
    return SENTINEL_KEYWORD in reply


def parse_data_request(reply: str) -> DataRequest:
    """Extract city and date from a sentinel line.

    Accepts both ``city=[X], date=[Y]`` and ``city=X, date=Y``.
    """
    match = _SENTINEL_PATTERN.search(reply)
    if match is None:
        raise ProtocolError("Invalid data request format in model reply")

    city = _clean_token(match.group("bracketed_city") or match.group("city"))
    raw_date = _clean_token(match.group("bracketed_date") or match.group("date"))
    if not city or not raw_date:
        raise ProtocolError("Data request is missing a city or a date")
    return DataRequest(city=city, date=raw_date)


def _clean_token(value: str | None) -> str:
    return (value or "").strip().strip("[]").strip().rstrip(".;").strip()


def normalize_date(token: str, today: date) -> str:
    """Turn a model-supplied date token into YYYY-MM-DD.

    Unparseable input falls back to tomorrow instead of failing.
    """
    value = token.strip().lower()

    if value == "today":
        return today.isoformat()
    if value == "tomorrow":
        return (today + timedelta(days=1)).isoformat()
    if _ISO_DATE.match(value):
        return value

    parsed = _parse_general_date(value, today)
    if parsed is not None:
        return parsed.isoformat()

    fallback = (today + timedelta(days=1)).isoformat()
    logger.info(
        "Unparseable date, defaulting to tomorrow", date=token, normalized=fallback
    )
    return fallback


def _parse_general_date(value: str, today: date) -> date | None:
    if value == "yesterday":
        return today - timedelta(days=1)
    if value in ("day after tomorrow", "the day after tomorrow"):
        return today + timedelta(days=2)

    weekday = value.removeprefix("next ").removeprefix("this ").strip()
    if weekday in _WEEKDAYS:
        days_ahead = (_WEEKDAYS.index(weekday) - today.weekday()) % 7
        return today + timedelta(days=days_ahead or 7)

    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def describe_weather_code(code: int) -> str:
    """Human-readable description of a WMO weather code."""
    return WEATHER_CODE_DESCRIPTIONS.get(code, UNKNOWN_CONDITION)


def format_weather_summary(forecast: WeatherForecast) -> str:
    """Compact summary folded into the follow-up completion call."""
    return (
        f"temperature {forecast.temp_avg:.1f}°C "
        f"(max {forecast.temp_max:.1f}°C, min {forecast.temp_min:.1f}°C), "
        f"weathercode {forecast.weather_code} "
        f"({describe_weather_code(forecast.weather_code)})"
    )


class ConversationEngine:
    """Owns the completion exchange for one user message.

    The first call either answers directly or emits the sentinel line. In
    the latter case the weather is looked up and a single follow-up call
    with the data folded in produces the final answer.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        weather_client: WeatherLookupClient,
        language: str = "English",
        today: Callable[[], date] = date.today,
    ) -> None:
        self._llm = llm
        self._weather = weather_client
        self._language = language
        self._today = today

    async def converse(
        self, user_text: str, history: Sequence[ConversationTurn]
    ) -> str:
        """Return the assistant's final reply to ``user_text``.

        Raises:
            UpstreamError: the completion API or the weather provider failed.
            ProtocolError: the model asked for data in an unparseable form.
        """
        today = self._today()
        messages = self.build_messages(user_text, history, today)
        logger.info(
            "Sending conversation to completion API",
            history_count=len(history),
            total_messages=len(messages),
        )

        reply = await self._complete(messages)
        if not requires_data(reply):
            return reply

        request = parse_data_request(reply)
        normalized_date = normalize_date(request.date, today)
        logger.info(
            "Model requested weather data",
            city=request.city,
            date=request.date,
            normalized_date=normalized_date,
        )

        try:
            forecast = await self._weather.forecast(request.city, normalized_date)
        except AppException as exc:
            raise UpstreamError(
                f"Weather lookup failed for {request.city} on {normalized_date}: "
                f"{exc.message}",
                code=f"WEATHER_{exc.code}",
            ) from exc

        place = forecast.city
        if forecast.country:
            place = f"{forecast.city}, {forecast.country}"
        context = WEATHER_CONTEXT_TEMPLATE.format(
            city=place,
            date=normalized_date,
            summary=format_weather_summary(forecast),
        )
        follow_up = [*messages, SystemMessage(content=context)]
        return await self._complete(follow_up)

    def build_messages(
        self,
        user_text: str,
        history: Sequence[ConversationTurn],
        today: date,
    ) -> list[BaseMessage]:
        """System instruction, then history in order, then the new user turn."""
        messages: list[BaseMessage] = [
            SystemMessage(
                content=SYSTEM_PROMPT_TEMPLATE.format(
                    language=self._language, today=today.isoformat()
                )
            )
        ]
        messages.extend(_to_langchain(turn) for turn in history)
        messages.append(HumanMessage(content=user_text))
        return messages

    async def _complete(self, messages: list[BaseMessage]) -> str:
        try:
            response = await self._llm.ainvoke(messages)
        except Exception as exc:
            logger.error("Completion API call failed", error=str(exc))
            raise UpstreamError(f"Completion API error: {exc}") from exc

        content = _extract_text(response)
        if not content:
            raise UpstreamError("Completion API returned no content")
        return content


def _to_langchain(turn: ConversationTurn) -> BaseMessage:
    match turn.role:
        case "system":
            return SystemMessage(content=turn.content)
        case "assistant":
            return AIMessage(content=turn.content)
        case _:
            return HumanMessage(content=turn.content)


def _extract_text(response: object) -> str:
    content = getattr(response, "content", None)
    if isinstance(content, list):
        parts = [
            part if isinstance(part, str) else str(part.get("text", ""))
            for part in content
            if isinstance(part, str | dict)
        ]
        content = "".join(parts)
    if not isinstance(content, str) or not content.strip():
        return ""
    return content

"""Main synchronous and asynchronous clients for the HomeKeeper API."""

from __future__ import annotations

import logging
from typing import Any, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .config import DEFAULT_TIMEOUT, USER_AGENT, resolve_base_url
from .csrf import (
    CSRF_HEADER,
    CSRF_TOKEN_PATH,
    REFRESH_PATH,
    AuthPathPredicate,
    CsrfTokenCache,
    is_auth_path,
    requires_csrf,
)
from .exceptions import ApiError, HomeKeeperValidationError, SessionExpiredError
from .models import (
    AddMemberRequest,
    ApiMessage,
    CreateInvitationRequest,
    CsrfResponse,
    HouseholdInput,
    HouseholdRole,
    HouseResponse,
    InvitationResponse,
    LoginRequest,
    MemberDetail,
    MemberResponse,
    RedeemResponse,
    RegisterRequest,
    SafeUser,
    SerializedHousehold,
)
from .request_options import RequestOptions
from .security import sanitize_headers, validate_base_url, validate_path

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

INVITATION_CODE_LENGTH = 6


def _coerce_json_payload(payload: Any) -> Any:
    if payload is None:
        return None
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(payload, Mapping):
        return dict(payload)
    return payload


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    clean: dict[str, str] = {}
    for key, value in headers.items():
        clean[str(key)] = str(value)
    return clean


def _unwrap_envelope(payload: Any) -> Any:
    if isinstance(payload, Mapping) and "data" in payload:
        return payload["data"]
    return payload


def _require_id(value: str | None, label: str) -> str:
    if value is None or not str(value).strip():
        raise HomeKeeperValidationError(f"Missing {label}")
    return str(value).strip()


def _coerce_role(role: HouseholdRole | str) -> HouseholdRole:
    try:
        return HouseholdRole(role)
    except ValueError:
        raise HomeKeeperValidationError(f"Invalid household role: {role!r}") from None


def _coerce_invitation_code(code: str | None) -> str:
    normalized = (code or "").strip()
    if len(normalized) != INVITATION_CODE_LENGTH:
        raise HomeKeeperValidationError(
            f"Invitation code must be {INVITATION_CODE_LENGTH} characters"
        )
    return normalized


def _coerce_invitation_payload(invitation: CreateInvitationRequest | Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(invitation, CreateInvitationRequest):
        try:
            invitation = CreateInvitationRequest.model_validate(dict(invitation))
        except ValidationError as exc:
            raise HomeKeeperValidationError(f"Invalid invitation: {exc.errors()[0]['msg']}") from exc
    return _coerce_json_payload(invitation)


def _as_model(model: type[ModelT], payload: Any) -> ModelT:
    return model.model_validate(payload)


def _as_model_list(model: type[ModelT], payload: Any) -> list[ModelT]:
    return [model.model_validate(item) for item in payload or []]


def _as_message(payload: Any) -> ApiMessage:
    if isinstance(payload, Mapping):
        return ApiMessage.model_validate(payload)
    return ApiMessage()


class _BaseHomeKeeperClient:
    default_timeout = DEFAULT_TIMEOUT

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float = default_timeout,
        headers: Mapping[str, str] | None = None,
        csrf_cache: CsrfTokenCache | None = None,
        auth_path_predicate: AuthPathPredicate | None = None,
        follow_redirects: bool = True,
        allow_http: bool = False,
    ) -> None:
        self.base_url = resolve_base_url(base_url)
        validate_base_url(self.base_url, allow_http=allow_http)
        self.timeout = timeout
        self.csrf_cache = csrf_cache if csrf_cache is not None else CsrfTokenCache()
        self._is_auth_path = auth_path_predicate or is_auth_path
        self._default_headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if headers:
            self._default_headers.update(_normalize_headers(headers))

        self._client_kwargs = {
            "base_url": self.base_url,
            "timeout": timeout,
            "follow_redirects": follow_redirects,
            "trust_env": False,
        }

    @property
    def csrf_token(self) -> str | None:
        return self.csrf_cache.token

    def clear_csrf_token(self) -> None:
        """Forget the cached CSRF token so the next protected request fetches a new one."""
        self.csrf_cache.clear()

    def _request_options(self, options: RequestOptions | None) -> RequestOptions:
        request_options = options or RequestOptions()
        if request_options.body is not None and request_options.json is not None:
            raise HomeKeeperValidationError("body and json are mutually exclusive")
        self._build_request_timeout(request_options)
        return request_options

    @staticmethod
    def _method(request_options: RequestOptions) -> str:
        return (request_options.method or "GET").upper()

    def _needs_csrf(self, method: str, path: str) -> bool:
        return requires_csrf(method, path, self._is_auth_path)

    def _headers(self, request_options: RequestOptions, csrf_token: str | None = None) -> httpx.Headers:
        merged = httpx.Headers(self._default_headers)
        if request_options.headers:
            merged.update(_normalize_headers(request_options.headers))
        if csrf_token:
            merged[CSRF_HEADER] = csrf_token
        else:
            merged.pop(CSRF_HEADER, None)
        return merged

    def _build_request_timeout(self, request_options: RequestOptions) -> float:
        timeout = request_options.timeout if request_options.timeout is not None else self.timeout
        if timeout <= 0:
            raise HomeKeeperValidationError("timeout must be greater than 0")
        return float(timeout)

    def _request_kwargs(
        self,
        method: str,
        path: str,
        request_options: RequestOptions,
        csrf_token: str | None,
    ) -> dict[str, Any]:
        headers = self._headers(request_options, csrf_token)
        kwargs: dict[str, Any] = {
            "method": method,
            "url": path,
            "headers": headers,
            "timeout": self._build_request_timeout(request_options),
        }
        if request_options.body is not None:
            kwargs["content"] = request_options.body
        elif request_options.json is not None:
            kwargs["json"] = _coerce_json_payload(request_options.json)
        logger.debug(f"{method} {path} headers={sanitize_headers(dict(headers))}")
        return kwargs

    def _auxiliary_headers(self) -> dict[str, str]:
        return dict(self._default_headers)

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @classmethod
    def _api_error(cls, response: httpx.Response) -> ApiError:
        body = cls._decode_json(response)
        message = f"HTTP {response.status_code}"
        if isinstance(body, Mapping):
            error = body.get("error")
            if isinstance(error, str) and error:
                message = error
        return ApiError(response.status_code, message, body=body)

    @classmethod
    def _parse_response(cls, response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError:
            # Empty or non-JSON success bodies.
            return {}
        return _unwrap_envelope(payload)

    @classmethod
    def _csrf_token_from(cls, response: httpx.Response) -> str:
        if not response.is_success:
            raise cls._api_error(response)
        payload = cls._decode_json(response)
        try:
            token = CsrfResponse.model_validate(payload).csrf_token
        except ValidationError:
            token = ""
        if not token:
            raise ApiError(response.status_code, "CSRF token missing from response", body=payload)
        return token

    @classmethod
    def _check_refresh(cls, response: httpx.Response, original_error: ApiError) -> None:
        if response.status_code == 205:
            logger.warning("Session refresh rejected; a new login is required")
            raise SessionExpiredError(body=cls._decode_json(response))
        if response.is_success:
            logger.debug("Session refreshed, retrying original request")
            return
        logger.debug(f"Session refresh failed with HTTP {response.status_code}")
        raise original_error

    def _should_refresh(self, path: str, response: httpx.Response) -> bool:
        return response.status_code == 401 and not self._is_auth_path(path)


class HomeKeeperClient(_BaseHomeKeeperClient):
    """Synchronous client."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float = _BaseHomeKeeperClient.default_timeout,
        headers: Mapping[str, str] | None = None,
        csrf_cache: CsrfTokenCache | None = None,
        auth_path_predicate: AuthPathPredicate | None = None,
        follow_redirects: bool = True,
        httpx_client: httpx.Client | None = None,
        allow_http: bool = False,
    ) -> None:
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            csrf_cache=csrf_cache,
            auth_path_predicate=auth_path_predicate,
            follow_redirects=follow_redirects,
            allow_http=allow_http,
        )
        self._httpx = httpx_client or httpx.Client(**self._client_kwargs)

    def __enter__(self) -> "HomeKeeperClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._httpx.close()

    def request(self, path: str, options: RequestOptions | None = None) -> Any:
        request_options = self._request_options(options)
        path = validate_path(path)
        method = self._method(request_options)
        csrf_token = self._ensure_csrf_token() if self._needs_csrf(method, path) else None
        kwargs = self._request_kwargs(method, path, request_options, csrf_token)

        response = self._httpx.request(**kwargs)
        if self._should_refresh(path, response):
            self._refresh_session(self._api_error(response))
            response = self._httpx.request(**kwargs)

        if not response.is_success:
            raise self._api_error(response)
        return self._parse_response(response)

    def _ensure_csrf_token(self) -> str:
        token = self.csrf_cache.token
        if token:
            return token
        logger.debug("Fetching CSRF token")
        response = self._httpx.request("GET", CSRF_TOKEN_PATH, headers=self._auxiliary_headers())
        token = self._csrf_token_from(response)
        self.csrf_cache.set(token)
        return token

    def _refresh_session(self, original_error: ApiError) -> None:
        logger.debug("Received 401, attempting session refresh")
        response = self._httpx.request("POST", REFRESH_PATH, headers=self._auxiliary_headers())
        self._check_refresh(response, original_error)

    def login(self, email: str, password: str) -> SafeUser:
        payload = LoginRequest(email=email, password=password)
        user = self.request("/auth/login", RequestOptions(method="POST", json=payload))
        # The backend issues a fresh CSRF cookie on login.
        self.clear_csrf_token()
        return _as_model(SafeUser, user)

    def register(self, email: str, password: str, name: str) -> SafeUser:
        payload = RegisterRequest(email=email, password=password, name=name)
        user = self.request("/auth/register", RequestOptions(method="POST", json=payload))
        self.clear_csrf_token()
        return _as_model(SafeUser, user)

    def logout(self) -> ApiMessage:
        try:
            response = self.request("/auth/logout", RequestOptions(method="POST"))
        finally:
            self.clear_csrf_token()
        return _as_message(response)

    def whoami(self) -> SafeUser | None:
        user = self.request("/auth/whoami")
        if not user:
            return None
        return _as_model(SafeUser, user)

    def list_households(self) -> list[HouseResponse]:
        return _as_model_list(HouseResponse, self.request("/households"))

    def get_household(self, household_id: str) -> HouseResponse:
        household_id = _require_id(household_id, "household")
        return _as_model(HouseResponse, self.request(f"/households/{household_id}"))

    def create_household(self, name: str, description: str | None = None) -> SerializedHousehold:
        payload = HouseholdInput(name=name, description=description)
        household = self.request("/households", RequestOptions(method="POST", json=payload))
        return _as_model(SerializedHousehold, household)

    def update_household(self, household_id: str, name: str, description: str | None = None) -> HouseResponse:
        household_id = _require_id(household_id, "household")
        payload = HouseholdInput(name=name, description=description)
        household = self.request(f"/households/{household_id}", RequestOptions(method="PUT", json=payload))
        return _as_model(HouseResponse, household)

    def delete_household(self, household_id: str) -> ApiMessage:
        household_id = _require_id(household_id, "household")
        return _as_message(self.request(f"/households/{household_id}", RequestOptions(method="DELETE")))

    def list_members(self, household_id: str) -> MemberResponse:
        household_id = _require_id(household_id, "household")
        return _as_model(MemberResponse, self.request(f"/households/{household_id}/members"))

    def add_member(self, household_id: str, user_id: str, role: HouseholdRole | str) -> MemberDetail:
        household_id = _require_id(household_id, "household")
        payload = AddMemberRequest(user_id=_require_id(user_id, "member"), role=_coerce_role(role))
        member = self.request(f"/households/{household_id}/members", RequestOptions(method="PUT", json=payload))
        return _as_model(MemberDetail, member)

    def get_member(self, household_id: str, user_id: str) -> MemberDetail:
        household_id = _require_id(household_id, "household")
        user_id = _require_id(user_id, "member")
        return _as_model(MemberDetail, self.request(f"/households/{household_id}/member/{user_id}"))

    def set_member_role(self, household_id: str, user_id: str, role: HouseholdRole | str) -> MemberDetail:
        household_id = _require_id(household_id, "household")
        user_id = _require_id(user_id, "member")
        payload = {"role": _coerce_role(role).value}
        member = self.request(
            f"/households/{household_id}/members/{user_id}/role",
            RequestOptions(method="PUT", json=payload),
        )
        return _as_model(MemberDetail, member)

    def remove_member(self, household_id: str, user_id: str) -> ApiMessage:
        household_id = _require_id(household_id, "household")
        user_id = _require_id(user_id, "member")
        response = self.request(f"/households/{household_id}/members/{user_id}", RequestOptions(method="DELETE"))
        return _as_message(response)

    def create_invitation(
        self,
        household_id: str,
        invitation: CreateInvitationRequest | Mapping[str, Any],
    ) -> InvitationResponse:
        household_id = _require_id(household_id, "household")
        payload = _coerce_invitation_payload(invitation)
        created = self.request(
            f"/households/{household_id}/members/invite",
            RequestOptions(method="POST", json=payload),
        )
        return _as_model(InvitationResponse, created)

    def list_invitations(self, household_id: str) -> list[InvitationResponse]:
        household_id = _require_id(household_id, "household")
        return _as_model_list(InvitationResponse, self.request(f"/households/{household_id}/invitations"))

    def cancel_invitation(self, household_id: str, invitation_id: str) -> InvitationResponse:
        household_id = _require_id(household_id, "household")
        invitation_id = _require_id(invitation_id, "invitation")
        cancelled = self.request(
            f"/households/{household_id}/invitations/{invitation_id}",
            RequestOptions(method="DELETE"),
        )
        return _as_model(InvitationResponse, cancelled)

    def redeem_invitation(self, code: str) -> RedeemResponse:
        payload = {"code": _coerce_invitation_code(code)}
        redeemed = self.request("/invitations/redeem", RequestOptions(method="POST", json=payload))
        return _as_model(RedeemResponse, redeemed)


class AsyncHomeKeeperClient(_BaseHomeKeeperClient):
    """Asynchronous client."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float = _BaseHomeKeeperClient.default_timeout,
        headers: Mapping[str, str] | None = None,
        csrf_cache: CsrfTokenCache | None = None,
        auth_path_predicate: AuthPathPredicate | None = None,
        follow_redirects: bool = True,
        httpx_client: httpx.AsyncClient | None = None,
        allow_http: bool = False,
    ) -> None:
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            csrf_cache=csrf_cache,
            auth_path_predicate=auth_path_predicate,
            follow_redirects=follow_redirects,
            allow_http=allow_http,
        )
        self._httpx = httpx_client or httpx.AsyncClient(**self._client_kwargs)

    async def __aenter__(self) -> "AsyncHomeKeeperClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._httpx.aclose()

    async def request(self, path: str, options: RequestOptions | None = None) -> Any:
        request_options = self._request_options(options)
        path = validate_path(path)
        method = self._method(request_options)
        csrf_token = await self._ensure_csrf_token() if self._needs_csrf(method, path) else None
        kwargs = self._request_kwargs(method, path, request_options, csrf_token)

        response = await self._httpx.request(**kwargs)
        if self._should_refresh(path, response):
            await self._refresh_session(self._api_error(response))
            response = await self._httpx.request(**kwargs)

        if not response.is_success:
            raise self._api_error(response)
        return self._parse_response(response)

    async def _ensure_csrf_token(self) -> str:
        token = self.csrf_cache.token
        if token:
            return token
        logger.debug("Fetching CSRF token")
        response = await self._httpx.request("GET", CSRF_TOKEN_PATH, headers=self._auxiliary_headers())
        token = self._csrf_token_from(response)
        self.csrf_cache.set(token)
        return token

    async def _refresh_session(self, original_error: ApiError) -> None:
        logger.debug("Received 401, attempting session refresh")
        response = await self._httpx.request("POST", REFRESH_PATH, headers=self._auxiliary_headers())
        self._check_refresh(response, original_error)

    async def login(self, email: str, password: str) -> SafeUser:
        payload = LoginRequest(email=email, password=password)
        user = await self.request("/auth/login", RequestOptions(method="POST", json=payload))
        self.clear_csrf_token()
        return _as_model(SafeUser, user)

    async def register(self, email: str, password: str, name: str) -> SafeUser:
        payload = RegisterRequest(email=email, password=password, name=name)
        user = await self.request("/auth/register", RequestOptions(method="POST", json=payload))
        self.clear_csrf_token()
        return _as_model(SafeUser, user)

    async def logout(self) -> ApiMessage:
        try:
            response = await self.request("/auth/logout", RequestOptions(method="POST"))
        finally:
            self.clear_csrf_token()
        return _as_message(response)

    async def whoami(self) -> SafeUser | None:
        user = await self.request("/auth/whoami")
        if not user:
            return None
        return _as_model(SafeUser, user)

    async def list_households(self) -> list[HouseResponse]:
        return _as_model_list(HouseResponse, await self.request("/households"))

    async def get_household(self, household_id: str) -> HouseResponse:
        household_id = _require_id(household_id, "household")
        return _as_model(HouseResponse, await self.request(f"/households/{household_id}"))

    async def create_household(self, name: str, description: str | None = None) -> SerializedHousehold:
        payload = HouseholdInput(name=name, description=description)
        household = await self.request("/households", RequestOptions(method="POST", json=payload))
        return _as_model(SerializedHousehold, household)

    async def update_household(self, household_id: str, name: str, description: str | None = None) -> HouseResponse:
        household_id = _require_id(household_id, "household")
        payload = HouseholdInput(name=name, description=description)
        household = await self.request(f"/households/{household_id}", RequestOptions(method="PUT", json=payload))
        return _as_model(HouseResponse, household)

    async def delete_household(self, household_id: str) -> ApiMessage:
        household_id = _require_id(household_id, "household")
        return _as_message(await self.request(f"/households/{household_id}", RequestOptions(method="DELETE")))

    async def list_members(self, household_id: str) -> MemberResponse:
        household_id = _require_id(household_id, "household")
        return _as_model(MemberResponse, await self.request(f"/households/{household_id}/members"))

    async def add_member(self, household_id: str, user_id: str, role: HouseholdRole | str) -> MemberDetail:
        household_id = _require_id(household_id, "household")
        payload = AddMemberRequest(user_id=_require_id(user_id, "member"), role=_coerce_role(role))
        member = await self.request(f"/households/{household_id}/members", RequestOptions(method="PUT", json=payload))
        return _as_model(MemberDetail, member)

    async def get_member(self, household_id: str, user_id: str) -> MemberDetail:
        household_id = _require_id(household_id, "household")
        user_id = _require_id(user_id, "member")
        return _as_model(MemberDetail, await self.request(f"/households/{household_id}/member/{user_id}"))

    async def set_member_role(self, household_id: str, user_id: str, role: HouseholdRole | str) -> MemberDetail:
        household_id = _require_id(household_id, "household")
        user_id = _require_id(user_id, "member")
        payload = {"role": _coerce_role(role).value}
        member = await self.request(
            f"/households/{household_id}/members/{user_id}/role",
            RequestOptions(method="PUT", json=payload),
        )
        return _as_model(MemberDetail, member)

    async def remove_member(self, household_id: str, user_id: str) -> ApiMessage:
        household_id = _require_id(household_id, "household")
        user_id = _require_id(user_id, "member")
        response = await self.request(f"/households/{household_id}/members/{user_id}", RequestOptions(method="DELETE"))
        return _as_message(response)

    async def create_invitation(
        self,
        household_id: str,
        invitation: CreateInvitationRequest | Mapping[str, Any],
    ) -> InvitationResponse:
        household_id = _require_id(household_id, "household")
        payload = _coerce_invitation_payload(invitation)
        created = await self.request(
            f"/households/{household_id}/members/invite",
            RequestOptions(method="POST", json=payload),
        )
        return _as_model(InvitationResponse, created)

    async def list_invitations(self, household_id: str) -> list[InvitationResponse]:
        household_id = _require_id(household_id, "household")
        return _as_model_list(InvitationResponse, await self.request(f"/households/{household_id}/invitations"))

    async def cancel_invitation(self, household_id: str, invitation_id: str) -> InvitationResponse:
        household_id = _require_id(household_id, "household")
        invitation_id = _require_id(invitation_id, "invitation")
        cancelled = await self.request(
            f"/households/{household_id}/invitations/{invitation_id}",
            RequestOptions(method="DELETE"),
        )
        return _as_model(InvitationResponse, cancelled)

    async def redeem_invitation(self, code: str) -> RedeemResponse:
        payload = {"code": _coerce_invitation_code(code)}
        redeemed = await self.request("/invitations/redeem", RequestOptions(method="POST", json=payload))
        return _as_model(RedeemResponse, redeemed)

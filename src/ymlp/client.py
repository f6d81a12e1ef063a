from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

import httpx
from pydantic import ValidationError

from . import confirmations
from .config import settings
from .errors import InvalidArgument
from .models import Credentials, HttpMethod, Sorting
from .transport import YmlpTransport


def _join(ids: Iterable[Any] | str | int) -> str:
    """Comma-join a list of group/field/filter ids; a single id passes through."""
    if isinstance(ids, (str, int)):
        return str(ids)
    return ",".join(str(i) for i in ids)


def _date(value: date | datetime | None, fmt: str = "%Y-%m-%d") -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, date):
        raise InvalidArgument(f"Expected a date, got {value!r}")
    return value.strftime(fmt)


def _sorting(value: Sorting | str | None) -> Optional[str]:
    if value is None:
        return None
    try:
        return Sorting(value).value
    except ValueError as exc:
        raise InvalidArgument(f"Sorting must be Ascending or Descending, got {value!r}") from exc


def _int(value: Optional[int]) -> Optional[int]:
    return None if value is None else int(value)


def _flag(value: Optional[bool]) -> Optional[str]:
    # The API only understands "switch on"; a false flag is simply not sent.
    return "1" if value else None


def _paging(
    page: Optional[int], number_per_page: Optional[int], sorting: Sorting | str | None
) -> dict[str, Any]:
    return {
        "Page": _int(page),
        "NumberPerPage": _int(number_per_page),
        "Sorting": _sorting(sorting),
    }


def _date_range(start_date: date | None, stop_date: date | None) -> dict[str, Any]:
    return {"StartDate": _date(start_date), "StopDate": _date(stop_date)}


class YmlpClient:
    """Client for the Your Mailing List Provider API (https://www.ymlp.com).

    Every method maps onto one remote endpoint and raises a
    :class:`~ymlp.errors.YmlpError` subclass on failure. Methods that change
    state return ``True`` only when the service answered with its exact
    confirmation sentence (see :mod:`ymlp.confirmations`).

    Certificates are verified unless *insecure_skip_verify* is set. An injected
    *http_client* keeps its own ``verify`` setting, so the two cannot be combined.
    """

    def __init__(
        self,
        username: str,
        api_key: str,
        *,
        timeout: Optional[int] = None,
        user_agent: Optional[str] = None,
        insecure_skip_verify: Optional[bool] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        try:
            credentials = Credentials(username=username, api_key=api_key)
        except ValidationError as exc:
            raise InvalidArgument(f"Username and API key are required: {exc}") from exc

        self._transport = YmlpTransport(
            credentials,
            timeout=timeout,
            user_agent=user_agent,
            insecure_skip_verify=insecure_skip_verify,
            http_client=http_client,
        )

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "YmlpClient":
        """Build a client from ``YMLP_USERNAME`` / ``YMLP_API_KEY``."""
        if not settings.username or not settings.api_key:
            raise InvalidArgument("YMLP_USERNAME and YMLP_API_KEY must be set")
        return cls(settings.username, settings.api_key, **kwargs)

    # ---------------------------------------------------------------
    # Configuration
    # ---------------------------------------------------------------

    @property
    def timeout(self) -> int:
        return self._transport.timeout

    def set_timeout(self, seconds: int) -> None:
        self._transport.set_timeout(seconds)

    @property
    def user_agent(self) -> str:
        return self._transport.user_agent

    def set_user_agent(self, user_agent: str) -> None:
        self._transport.set_user_agent(user_agent)

    def call(
        self,
        path: str,
        parameters: Optional[Mapping[str, Any]] = None,
        method: str | HttpMethod = HttpMethod.GET,
        expect_structured_response: bool = True,
    ) -> Any:
        """Raw access to any endpoint, for operations without a wrapper."""
        return self._transport.call(path, parameters, method, expect_structured_response)

    def _get(self, path: str, parameters: Optional[Mapping[str, Any]] = None) -> Any:
        return self._transport.call(path, parameters, HttpMethod.GET)

    def _post(self, path: str, parameters: Mapping[str, Any]) -> Any:
        return self._transport.call(path, parameters, HttpMethod.POST)

    # ---------------------------------------------------------------
    # General
    # ---------------------------------------------------------------

    def ping(self) -> str:
        """Return ``"Hello!"``; useful to check credentials and connectivity."""
        return self._get("Ping")

    # ---------------------------------------------------------------
    # Contacts
    # ---------------------------------------------------------------

    def contacts_add(
        self,
        email: str,
        groups: Iterable[Any],
        fields: Optional[Mapping[Any, Any]] = None,
        overrule_unsubscribed_bounced: bool = False,
    ) -> bool:
        """Add *email* to one or more groups.

        *fields* maps field ids to values, e.g. ``{1: "Jane", 2: "Doe"}``.
        With *overrule_unsubscribed_bounced* the address is added even if it
        previously unsubscribed or was removed by bounce handling.
        """
        email = str(email)
        parameters: dict[str, Any] = {"Email": email}
        for field_id, value in (fields or {}).items():
            parameters[f"Field{field_id}"] = value
        parameters["GroupID"] = _join(groups)
        parameters["OverruleUnsubscribedBounced"] = 1 if overrule_unsubscribed_bounced else None

        output = self._post("Contacts.Add", parameters)
        return confirmations.confirms(output, confirmations.CONTACT_ADDED, email=email)

    def contacts_delete(self, email: str, groups: Iterable[Any]) -> bool:
        email = str(email)
        output = self._post("Contacts.Delete", {"Email": email, "GroupID": _join(groups)})
        return confirmations.confirms(output, confirmations.CONTACT_REMOVED, email=email)

    def contacts_unsubscribe(self, email: str) -> bool:
        email = str(email)
        output = self._post("Contacts.Unsubscribe", {"Email": email})
        return confirmations.confirms(output, confirmations.CONTACT_UNSUBSCRIBED, email=email)

    def contacts_get_contact(self, email: str) -> Any:
        """All available information about one contact."""
        return self._get("Contacts.GetContact", {"Email": str(email)})

    def contacts_get_list(
        self,
        groups: Iterable[Any],
        fields: Iterable[Any],
        *,
        start_date: Optional[date] = None,
        stop_date: Optional[date] = None,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        """Contacts in the given groups, with the values of the given fields."""
        parameters = {"GroupID": _join(groups), "FieldID": _join(fields)}
        parameters.update(_date_range(start_date, stop_date))
        parameters.update(_paging(page, number_per_page, sorting))
        return self._get("Contacts.GetList", parameters)

    def contacts_get_unsubscribed(
        self,
        fields: Iterable[Any],
        *,
        start_date: Optional[date] = None,
        stop_date: Optional[date] = None,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        return self._contacts_by_state(
            "Contacts.GetUnsubscribed", fields, start_date, stop_date, page, number_per_page, sorting
        )

    def contacts_get_deleted(
        self,
        fields: Iterable[Any],
        *,
        start_date: Optional[date] = None,
        stop_date: Optional[date] = None,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        """Contacts that were removed manually."""
        return self._contacts_by_state(
            "Contacts.GetDeleted", fields, start_date, stop_date, page, number_per_page, sorting
        )

    def contacts_get_bounced(
        self,
        fields: Iterable[Any],
        *,
        start_date: Optional[date] = None,
        stop_date: Optional[date] = None,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        """Contacts removed by bounce back handling."""
        return self._contacts_by_state(
            "Contacts.GetBounced", fields, start_date, stop_date, page, number_per_page, sorting
        )

    def _contacts_by_state(
        self,
        path: str,
        fields: Iterable[Any],
        start_date: Optional[date],
        stop_date: Optional[date],
        page: Optional[int],
        number_per_page: Optional[int],
        sorting: Sorting | str | None,
    ) -> Any:
        parameters = {"FieldID": _join(fields)}
        parameters.update(_date_range(start_date, stop_date))
        parameters.update(_paging(page, number_per_page, sorting))
        return self._get(path, parameters)

    # ---------------------------------------------------------------
    # Groups
    # ---------------------------------------------------------------

    def groups_get_list(self) -> Any:
        """Groups with their ids and number of contacts."""
        return self._get("Groups.GetList")

    def groups_add(self, name: str) -> str:
        """Create a group and return its new id."""
        return confirmations.created_id(self._post("Groups.Add", {"GroupName": str(name)}))

    def groups_delete(self, group_id: Any) -> bool:
        output = self._post("Groups.Delete", {"GroupID": str(group_id)})
        return confirmations.confirms(output, confirmations.ID_REMOVED, id=group_id)

    def groups_update(self, group_id: Any, name: str) -> bool:
        output = self._post("Groups.Update", {"GroupID": str(group_id), "GroupName": str(name)})
        return confirmations.confirms(output, confirmations.ID_UPDATED, id=group_id)

    def groups_empty(self, group_id: Any) -> Any:
        """Remove every contact from a group; returns the service's message."""
        return self._post("Groups.Empty", {"GroupID": str(group_id)})

    # ---------------------------------------------------------------
    # Fields
    # ---------------------------------------------------------------

    def fields_get_list(self) -> Any:
        return self._get("Fields.GetList")

    def fields_add(
        self,
        name: str,
        alias: Optional[str] = None,
        default: Any = None,
        correct_uppercase: bool = False,
    ) -> str:
        """Create a field and return its new id. *alias* defaults to *name* remotely."""
        parameters = {
            "FieldName": str(name),
            "Alias": None if alias is None else str(alias),
            "DefaultValue": default,
            "CorrectUppercase": _flag(correct_uppercase),
        }
        return confirmations.created_id(self._post("Fields.Add", parameters))

    def fields_delete(self, field_id: Any) -> bool:
        output = self._post("Fields.Delete", {"FieldID": str(field_id)})
        return confirmations.confirms(output, confirmations.ID_REMOVED, id=field_id)

    def fields_update(
        self,
        field_id: Any,
        name: Optional[str] = None,
        alias: Optional[str] = None,
        default: Any = None,
        correct_uppercase: Optional[bool] = None,
    ) -> bool:
        """Update only the properties that are given."""
        parameters = {
            "FieldID": str(field_id),
            "FieldName": None if name is None else str(name),
            "Alias": None if alias is None else str(alias),
            "Default": default,
        }
        if correct_uppercase is not None:
            parameters["CorrectUppercase"] = "1" if correct_uppercase else "0"

        output = self._post("Fields.Update", parameters)
        return confirmations.confirms(output, confirmations.ID_UPDATED, id=field_id)

    # ---------------------------------------------------------------
    # Filters
    # ---------------------------------------------------------------

    def filters_get_list(self, overrule_deleted: bool = False) -> Any:
        """Filters with their criteria; *overrule_deleted* includes deleted ones."""
        return self._get("Filters.GetList", {"OverruleDeleted": _flag(overrule_deleted)})

    def filters_add(self, name: str, field: str, operand: str, value: str) -> str:
        parameters = {
            "FilterName": str(name),
            "Field": str(field),
            "Operand": str(operand),
            "Value": str(value),
        }
        return confirmations.created_id(self._post("Filters.Add", parameters))

    def filters_delete(self, filter_id: Any) -> bool:
        output = self._post("Filters.Delete", {"FilterID": str(filter_id)})
        return confirmations.confirms(output, confirmations.ID_REMOVED, id=filter_id)

    # ---------------------------------------------------------------
    # Newsletters
    # ---------------------------------------------------------------

    def newsletter_get_froms(self) -> Any:
        """Sender addresses available in the account."""
        return self._get("Newsletter.GetFroms")

    def newsletter_add_from(self, email: str, name: str) -> str:
        parameters = {"FromEmail": str(email), "FromName": str(name)}
        return confirmations.created_id(self._post("Newsletter.AddFrom", parameters))

    def newsletter_delete_from(self, from_id: Any) -> bool:
        output = self._post("Newsletter.DeleteFrom", {"FromID": str(from_id)})
        return confirmations.confirms(output, confirmations.ID_REMOVED, id=from_id)

    def newsletter_send(
        self,
        subject: str,
        from_id: Any,
        groups: Iterable[Any],
        *,
        html: Optional[str] = None,
        text: Optional[str] = None,
        delivery_time: Optional[datetime] = None,
        track_opens: bool = False,
        track_clicks: bool = False,
        test_message: bool = False,
        filters: Optional[Iterable[Any]] = None,
        combine_filters: bool = False,
    ) -> bool:
        """Queue a message for delivery to *groups*, optionally narrowed by *filters*.

        Without *delivery_time* the message goes out immediately.
        """
        parameters = {
            "Subject": str(subject),
            "HTML": None if html is None else str(html),
            "Text": None if text is None else str(text),
            "DeliveryTime": _date(delivery_time, "%Y-%m-%d %H:%M"),
            "FromID": str(from_id),
            "TrackOpens": _flag(track_opens),
            "TrackClicks": _flag(track_clicks),
            "TestMessage": _flag(test_message),
            "GroupID": _join(groups),
            "FilterID": None if filters is None else _join(filters),
            "CombineFilters": _flag(combine_filters),
        }
        output = self._post("Newsletter.Send", parameters)
        return confirmations.confirms(output, confirmations.MESSAGE_QUEUED)

    # ---------------------------------------------------------------
    # Archive
    # ---------------------------------------------------------------

    def archive_get_list(
        self,
        *,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        start_date: Optional[date] = None,
        stop_date: Optional[date] = None,
        sorting: Sorting | str | None = None,
        show_test_messages: bool = False,
    ) -> Any:
        """Newsletters in the archive."""
        parameters = _paging(page, number_per_page, sorting)
        parameters.update(_date_range(start_date, stop_date))
        parameters["ShowTestMessages"] = _flag(show_test_messages)
        return self._get("Archive.GetList", parameters)

    def archive_get_summary(self, newsletter_id: Any) -> Any:
        """Everything known about a newsletter except its content."""
        return self._get("Archive.GetSummary", {"NewsletterID": str(newsletter_id)})

    def archive_get_recipients(
        self,
        newsletter_id: Any,
        *,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        return self._archive_page(
            "Archive.GetRecipients", newsletter_id, {}, page, number_per_page, sorting
        )

    def archive_get_delivered(
        self,
        newsletter_id: Any,
        *,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        return self._archive_page(
            "Archive.GetDelivered", newsletter_id, {}, page, number_per_page, sorting
        )

    def archive_get_bounces(
        self,
        newsletter_id: Any,
        *,
        show_hard_bounces: bool = False,
        show_soft_bounces: bool = False,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        extra = {
            "ShowHardBounces": _flag(show_hard_bounces),
            "ShowSoftBounces": _flag(show_soft_bounces),
        }
        return self._archive_page(
            "Archive.GetBounces", newsletter_id, extra, page, number_per_page, sorting
        )

    def archive_get_opens(
        self,
        newsletter_id: Any,
        *,
        unique_opens: bool = False,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        """Addresses that opened the newsletter; *unique_opens* keeps only the first open."""
        extra = {"UniqueOpens": _flag(unique_opens)}
        return self._archive_page(
            "Archive.GetOpens", newsletter_id, extra, page, number_per_page, sorting
        )

    def archive_get_unopened(
        self,
        newsletter_id: Any,
        *,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        return self._archive_page(
            "Archive.GetUnopened", newsletter_id, {}, page, number_per_page, sorting
        )

    def archive_get_tracked_links(self, newsletter_id: Any) -> Any:
        """Links of a newsletter sent with click tracking."""
        return self._get("Archive.GetTrackedLinks", {"NewsletterID": str(newsletter_id)})

    def archive_get_clicks(
        self,
        newsletter_id: Any,
        *,
        link_id: Any = None,
        unique_clicks: bool = False,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        """Clicks for all tracked links, or only for *link_id*."""
        extra = {
            "LinkID": None if link_id is None else str(link_id),
            "UniqueClicks": _flag(unique_clicks),
        }
        return self._archive_page(
            "Archive.GetClicks", newsletter_id, extra, page, number_per_page, sorting
        )

    def archive_get_forwards(
        self,
        newsletter_id: Any,
        *,
        page: Optional[int] = None,
        number_per_page: Optional[int] = None,
        sorting: Sorting | str | None = None,
    ) -> Any:
        return self._archive_page(
            "Archive.GetForwards", newsletter_id, {}, page, number_per_page, sorting
        )

    def _archive_page(
        self,
        path: str,
        newsletter_id: Any,
        extra: Mapping[str, Any],
        page: Optional[int],
        number_per_page: Optional[int],
        sorting: Sorting | str | None,
    ) -> Any:
        parameters = {"NewsletterID": str(newsletter_id)}
        parameters.update(extra)
        parameters.update(_paging(page, number_per_page, sorting))
        return self._get(path, parameters)

"""Adapter da central de ajuda Paddy Power."""

from __future__ import annotations

import logging
from typing import ClassVar

from karen_ai.automation.adapters.base import SiteAdapter, first_failure
from karen_ai.domain.automation import AdapterResult, ClickAction, FillAction
from karen_ai.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

SELECTORS: dict[str, str] = {
    "search_box": "#topicText",
    "search_button": ".input-group-btn button",
    "search_results": ".row.search-result",
    "live_chat_button": "a.chat-link",
    "contact_options": ".contact-channel-list",
    "contact_link": 'a[href*="contact"]',
    "email_support_link": 'a[href*="email-form"]',
    "email_subject_field": "#incident\\.short_description",
    "email_description_field": "#incident\\.comments",
    "email_submit_button": "#submit-button",
}


class PaddyPowerAdapter(SiteAdapter):
    name: ClassVar[str] = "paddypower"
    display_name: ClassVar[str] = "Paddy Power"
    base_url: ClassVar[str] = "https://helpcenter.paddypower.com/app/home"

    selectors = SELECTORS

    async def search_for_issue(self, query: str) -> AdapterResult:
        logger.info("paddypower_search")
        try:
            session = self._require_session()
            results = await session.executor.execute_actions([
                FillAction(selector=self.selectors["search_box"], value=query),
                ClickAction(selector=self.selectors["search_button"]),
            ])
            failure = first_failure(results)
            if failure is not None:
                return await self._failure("search", failure.error, "search-error")

            await session.driver.wait_for(self.selectors["search_results"], 10_000)
            screenshot = await session.driver.screenshot("search-results")
            items = await session.driver.query_all(self.selectors["search_results"])
        except Exception as e:  # noqa: BLE001 - envelope nunca lança
            return await self._failure("search", str(e), "search-error")

        return self._result(
            success=True,
            action="search",
            message=f'Searched for "{query}"',
            results=items,
            screenshot=screenshot,
        )

    async def start_live_chat(self) -> AdapterResult:
        logger.info("paddypower_live_chat_attempt")
        chat_button = self.selectors["live_chat_button"]
        try:
            session = self._require_session()
            if not await session.driver.query(chat_button):
                await self._open_contact_options()
                if not await session.driver.query(chat_button):
                    screenshot = await session.driver.screenshot("no-chat-available")
                    return self._result(
                        success=False,
                        action="chat",
                        message="Live chat is not currently available",
                        screenshot=screenshot,
                    )

            results = await session.executor.execute_actions([ClickAction(selector=chat_button)])
            failure = first_failure(results)
            if failure is not None:
                return await self._failure("chat", failure.error, "chat-error")
            screenshot = await session.driver.screenshot("chat-interface")
        except Exception as e:  # noqa: BLE001 - envelope nunca lança
            return await self._failure("chat", str(e), "chat-error")

        return self._result(
            success=True,
            action="chat",
            message="Live chat initiated",
            screenshot=screenshot,
        )

    async def send_email_support(self, subject: str, message: str) -> AdapterResult:
        logger.info("paddypower_email_prepare")
        try:
            session = self._require_session()
            await self._open_contact_options()

            fill_results = await session.executor.execute_actions([
                ClickAction(selector=self.selectors["email_support_link"]),
                FillAction(selector=self.selectors["email_subject_field"], value=subject),
                FillAction(selector=self.selectors["email_description_field"], value=message),
            ])
            failure = first_failure(fill_results)
            if failure is not None:
                return await self._failure("email", failure.error, "email-error")

            await session.driver.screenshot("email-form-filled")
            submit = await session.executor.execute_actions([
                ClickAction(selector=self.selectors["email_submit_button"]),
            ])
            failure = first_failure(submit)
            if failure is not None:
                return await self._failure("email", failure.error, "email-error")
            screenshot = await session.driver.screenshot("email-submission-result")
        except Exception as e:  # noqa: BLE001 - envelope nunca lança
            return await self._failure("email", str(e), "email-error")

        return self._result(
            success=True,
            action="email",
            message="Email sent to support",
            screenshot=screenshot,
        )

    async def _open_contact_options(self) -> None:
        """Vai para as opções de contato se ainda não estiverem na página."""
        session = self._require_session()
        if not await session.driver.query(self.selectors["contact_options"]):
            await session.executor.execute_actions(
                [ClickAction(selector=self.selectors["contact_link"])]
            )

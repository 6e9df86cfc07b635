"""执行模块：基于 Playwright 的浏览器会话与动作执行"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from playwright.async_api import Page, async_playwright

from .config import BROWSER_TYPES, AutoConfig
from .logger import SessionLogger
from .models import ActionStep, BrowserSession, Result, fail, ok


class PlaywrightProvider:
    """浏览器会话提供者：启动 / 关闭 Playwright 浏览器"""

    async def initialize(self, config: AutoConfig, logger: Optional[SessionLogger] = None) -> Result[BrowserSession]:
        browser_config = config.browser
        if logger:
            logger.browser(
                "initialization",
                "Starting browser initialization",
                {"type": browser_config.type, "headless": browser_config.headless},
            )

        if browser_config.type not in BROWSER_TYPES:
            message = f"Unsupported browser type: {browser_config.type}"
            if logger:
                logger.error(message, {"supportedTypes": list(BROWSER_TYPES)})
            return fail(message)

        session = BrowserSession()
        try:
            session.playwright = await async_playwright().start()
            launcher = getattr(session.playwright, browser_config.type)
            session.browser = await launcher.launch(
                headless=browser_config.headless,
                slow_mo=browser_config.slow_mo,
            )
            if logger:
                logger.browser("launch", f"Browser {browser_config.type} launched successfully")

            viewport = {"width": browser_config.viewport.width, "height": browser_config.viewport.height}
            session.context = await session.browser.new_context(viewport=viewport)
            if logger:
                logger.browser("context", "Browser context created", {"viewport": viewport})

            session.page = await session.context.new_page()
            session.page.set_default_timeout(browser_config.timeout)
            if logger:
                logger.browser("page", "New page created", {"timeout": browser_config.timeout})
        except Exception as e:
            # 启动到一半失败：释放已拿到的句柄
            await self.close(session)
            message = f"Failed to initialize browser: {e}"
            if logger:
                logger.error(message, {"error": str(e)})
            return fail(message)

        return ok(session)

    async def close(self, session: BrowserSession) -> Result[None]:
        """按 page → context → browser → playwright 顺序关闭，单个失败不影响其他"""
        errors = []
        for name in ("page", "context", "browser"):
            handle = getattr(session, name)
            if handle is None:
                continue
            try:
                await handle.close()
            except Exception as e:
                errors.append(f"{name}: {e}")
            setattr(session, name, None)

        if session.playwright is not None:
            try:
                await session.playwright.stop()
            except Exception as e:
                errors.append(f"playwright: {e}")
            session.playwright = None

        if errors:
            return fail(f"Failed to close browser: {'; '.join(errors)}")
        return ok()


class PlaywrightController:
    """动作执行器：把一个 ActionStep 翻译成 Playwright 调用"""

    def __init__(self, session: BrowserSession, config: AutoConfig, logger: Optional[SessionLogger] = None):
        self.page: Page = session.page
        self.config = config
        self.logger = logger

    @property
    def screenshot_dir(self) -> Path:
        return Path(self.config.logging.output_dir) / "screenshots"

    def _target(self, selector: str, frame: Optional[str]):
        if frame:
            return self.page.frame_locator(frame).locator(selector)
        return self.page.locator(selector)

    async def execute(
        self,
        step: ActionStep,
        timeout: Optional[int] = None,
        step_number: Optional[int] = None,
    ) -> Result[Optional[str]]:
        """
        执行单个动作。普通失败返回 Failure（信息可被错误分类器解析），不抛出。
        """
        timeout = timeout or step.timeout or self.config.browser.timeout
        action = step.type

        try:
            if action == "navigate":
                return await self._navigate(step, timeout)
            elif action == "click":
                return await self._click(step, timeout)
            elif action == "type":
                return await self._type(step, timeout)
            elif action == "wait":
                return await self._wait(step, timeout)
            elif action == "screenshot":
                if not self.config.logging.save_screenshots:
                    # 只跳过脚本中的截图步骤，失败现场截图由 screenshot_on_error 控制
                    if self.logger:
                        self.logger.info("Screenshot skipped: save_screenshots is disabled", step=step_number)
                    return ok()
                return await self.take_screenshot(step_number=step_number)
            elif action == "scroll":
                return await self._scroll(step)
            elif action == "select":
                return await self._select(step, timeout)
            elif action == "alert":
                return self._alert(step)
            else:
                return fail(f"Unknown action type: {action}")
        except Exception as e:
            return fail(f"Failed to execute action step: {e}")

    async def _navigate(self, step: ActionStep, timeout: int) -> Result[None]:
        if not step.url:
            return fail("Navigate action requires URL")
        if self.logger:
            self.logger.debug(f"Navigating to {step.url}", {"url": step.url, "timeout": timeout})
        started = datetime.now(timezone.utc)
        try:
            await self.page.goto(step.url, timeout=timeout, wait_until="networkidle")
        except Exception as e:
            message = f"Failed to navigate to {step.url}: {e}"
            if self.logger:
                self.logger.error(message, {"url": step.url, "timeout": timeout, "error": str(e)})
            return fail(message)
        if self.logger:
            elapsed = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
            self.logger.info(f"Successfully navigated to {step.url}", {"url": step.url, "duration": elapsed})
        return ok()

    async def _click(self, step: ActionStep, timeout: int) -> Result[None]:
        if not step.selector:
            return fail("Click action requires selector")
        selector = step.selector
        try:
            if not step.frame:
                # 先检查元素是否存在，快速失败
                count = await self.page.locator(selector).count()
                if count == 0:
                    if step.optional:
                        if self.logger:
                            self.logger.warn(f"Element not found: {selector}", {"selector": selector})
                        return ok()
                    return fail(f"Element not found: {selector}")
            await self._target(selector, step.frame).click(timeout=timeout)
        except Exception as e:
            return fail(f"Failed to click element {selector}: {e}")
        return ok()

    async def _type(self, step: ActionStep, timeout: int) -> Result[None]:
        if not step.selector or step.value is None:
            return fail("Type action requires selector and value")
        try:
            await self._target(step.selector, step.frame).fill(str(step.value), timeout=timeout)
        except Exception as e:
            return fail(f"Failed to type text into {step.selector}: {e}")
        return ok()

    async def _wait(self, step: ActionStep, timeout: int) -> Result[None]:
        if step.selector:
            try:
                await self._target(step.selector, step.frame).wait_for(state="attached", timeout=timeout)
            except Exception as e:
                return fail(f"Failed to wait for element {step.selector}: {e}")
            return ok()
        if step.timeout:
            await asyncio.sleep(step.timeout / 1000)
            return ok()
        return fail("Wait action requires either selector or timeout")

    async def take_screenshot(
        self,
        filename: Optional[str] = None,
        step_number: Optional[int] = None,
        type: str = "success",
    ) -> Result[str]:
        """整页截图，保存到 output_dir/screenshots 并登记到日志"""
        if not filename:
            filename = f"screenshot-{datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S-%f')}.png"
        path = self.screenshot_dir / filename
        try:
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            if self.logger:
                self.logger.debug("Taking screenshot", {"path": str(path), "step": step_number})
            await self.page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            message = f"Failed to take screenshot: {e}"
            if self.logger:
                self.logger.error(message, {"path": str(path), "error": str(e), "step": step_number})
            return fail(message)

        if self.logger:
            await self.logger.screenshot(str(path), step_number, type)
        return ok(str(path))

    async def _scroll(self, step: ActionStep) -> Result[None]:
        if not step.selector:
            return fail("Scroll action requires selector")
        distance: Union[int, float, None] = step.value if isinstance(step.value, (int, float)) else None
        locator = self._target(step.selector, step.frame)
        try:
            if distance:
                await locator.evaluate("(el, dist) => el.scrollBy(0, dist)", distance)
            else:
                await locator.scroll_into_view_if_needed()
        except Exception as e:
            return fail(f"Failed to scroll element {step.selector}: {e}")
        return ok()

    async def _select(self, step: ActionStep, timeout: int) -> Result[None]:
        if not step.selector or step.value is None:
            return fail("Select action requires selector and value")
        try:
            await self._target(step.selector, step.frame).select_option(str(step.value), timeout=timeout)
        except Exception as e:
            return fail(f"Failed to select option {step.value} from {step.selector}: {e}")
        return ok()

    def _alert(self, step: ActionStep) -> Result[None]:
        """注册对话框处理器，作用于之后触发的 alert / confirm / prompt"""
        action = step.value if step.value in ("accept", "dismiss") else "accept"

        async def handle(dialog) -> None:
            if self.logger:
                self.logger.info(f"Dialog detected: {dialog.type} - {dialog.message}")
            if action == "dismiss":
                await dialog.dismiss()
            elif dialog.type == "prompt" and step.prompt_text:
                await dialog.accept(step.prompt_text)
            else:
                await dialog.accept()

        self.page.once("dialog", handle)
        return ok()

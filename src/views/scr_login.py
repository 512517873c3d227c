import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

import db.crud as crud
from db.errors import AuthRequiredError, ValidationError
from utils.messages import UserLoginMessage
from utils.pure import validate_credentials
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, ProblemsDialogModal, QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Sign in or sign up. Dismisses once the app state holds an identity.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Sign in", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Sign in", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Sign in", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-reg-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-reg-pwd"
                    )
                    yield Label("Confirm password")
                    yield Input(
                        placeholder="*********", password=True, id="input-reg-confirm"
                    )
                    with Container(id="div-reg-btns"):
                        yield Button("Create account", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key != "enter":
            return
        if self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        elif self.focused == self.query_one("#input-reg-confirm"):
            self.handle_registration_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            return

        try:
            identity = await self.app.state.sign_in(email, pwd)
        except AuthRequiredError as e:
            self.notify(str(e), severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
            return
        except aiosqlite.Error as e:
            self.report_error("Sign in", e)
            return

        self.notify(f"Hello {identity.email}!")
        self.app.post_message(UserLoginMessage(identity))
        self.dismiss()

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value
        confirm = self.query_one("#input-reg-confirm", Input).value

        problems = validate_credentials(email, pwd, confirm)
        if problems:
            await self.app.push_screen_wait(
                ProblemsDialogModal("Cannot create the account:", problems)
            )
            return

        try:
            identity = await crud.sign_up(email, pwd, confirm)
        except ValidationError as e:
            self.notify(str(e), severity="error")
            return
        except aiosqlite.Error as e:
            self.report_error("Sign up", e)
            return

        await self.app.push_screen_wait(
            DialogModal(f"Account created for {identity.email}.")
        )

        self.get_child_by_type(TabbedContent).active = "tab-login"
        self.query_one("#input-login-email", Input).value = identity.email
        input_login_pwd = self.query_one("#input-login-pwd", Input)
        input_login_pwd.value = pwd
        input_login_pwd.focus()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())

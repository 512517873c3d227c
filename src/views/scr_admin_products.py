from __future__ import annotations

from typing import List, Optional

import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, SelectionList

import db.crud
from db.errors import StoreError
from db.models import SIZES, Product, ProductDraft
from db.storage import upload_image
from utils.pure import format_price, parse_price, validate_product
from views.base_screen import AdminScreen
from views.modal_dialog import DialogModal, ProblemsDialogModal


class AdminProductsScreen(AdminScreen):
    """
    Admins create, edit and delete products. Images are uploaded from a
    local path into the product image bucket before saving.
    """

    current_pid: Optional[int] = None

    def __init__(self) -> None:
        super().__init__()
        self._products: List[Product] = []
        self._image_url = ""

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal():
            yield DataTable(id="table-products")
            with VerticalScroll(id="div-product-form"):
                yield Label("", id="label-form-title")
                yield Label("Name")
                yield Input(id="input-name")
                yield Label("Price")
                yield Input(id="input-price", placeholder="1990.00", type="number")
                yield Label("Category")
                yield Input(id="input-category")
                yield Label("Description")
                yield Input(id="input-descr")
                yield Label("Sizes")
                yield SelectionList[str](*[(s, s) for s in SIZES], id="sel-sizes")
                yield Label("Image file")
                with Horizontal(id="hort-image"):
                    yield Input(id="input-image-path", placeholder="/path/to/image.png")
                    yield Button("Upload", id="btn-upload")
                yield Label("No image", id="label-image-url")
                with Horizontal(id="hort-controls"):
                    yield Button("New", id="btn-new")
                    yield Button("Delete", id="btn-delete", variant="error")
                    yield Button("Save", id="btn-save", variant="success")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Price")
        self.clear_form()

    @on(ScreenResume)
    @work(exclusive=True, group="products")
    async def reload_products(self) -> None:
        try:
            self._products = await db.crud.list_products()
        except aiosqlite.Error as e:
            self.report_error("Loading products", e)
            return

        table = self.query_one(DataTable)
        table.clear()
        for p in self._products:
            table.add_row(p.pid, p.name, format_price(p.price), key=str(p.pid))

    @on(DataTable.RowSelected)
    def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        pid = int(event.row_key.value)
        product = next((p for p in self._products if p.pid == pid), None)
        if product:
            self.fill_form(product)

    def fill_form(self, product: Product) -> None:
        self.current_pid = product.pid
        self.query_one("#label-form-title", Label).content = f"Editing product {product.pid}"
        self.query_one("#input-name", Input).value = product.name
        self.query_one("#input-price", Input).value = str(product.price)
        self.query_one("#input-category", Input).value = product.category
        self.query_one("#input-descr", Input).value = product.descr
        sizes = self.query_one("#sel-sizes", SelectionList)
        sizes.deselect_all()
        for s in product.sizes:
            if s in SIZES:
                sizes.select(s)
        self.set_image_url(product.image_url)
        self.query_one("#btn-delete").disabled = False

    @on(Button.Pressed, "#btn-new")
    def clear_form(self) -> None:
        self.current_pid = None
        self.query_one("#label-form-title", Label).content = "New product"
        for form_input in self.query("#div-product-form Input").results(Input):
            form_input.value = ""
        self.query_one("#sel-sizes", SelectionList).deselect_all()
        self.set_image_url("")
        self.query_one("#btn-delete").disabled = True
        self.query_one("#input-name").focus()

    def set_image_url(self, url: str) -> None:
        self._image_url = url or ""
        self.query_one("#label-image-url", Label).content = self._image_url or "No image"

    def draft(self) -> ProductDraft:
        selected = self.query_one("#sel-sizes", SelectionList).selected
        return ProductDraft(
            name=self.query_one("#input-name", Input).value,
            price=parse_price(self.query_one("#input-price", Input).value),
            descr=self.query_one("#input-descr", Input).value.strip(),
            category=self.query_one("#input-category", Input).value,
            image_url=self._image_url,
            sizes=tuple(s for s in SIZES if s in selected),
        )

    @on(Button.Pressed, "#btn-upload")
    @work(exclusive=True, group="upload")
    async def handle_upload(self) -> None:
        path = self.query_one("#input-image-path", Input).value.strip()
        try:
            url = await upload_image(path)
        except (StoreError, OSError) as e:
            self.report_error("Upload", e)
            return
        self.set_image_url(url)
        self.notify("Image uploaded.")

    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True, group="save")
    async def handle_save(self) -> None:
        draft = self.draft()
        problems = validate_product(draft)
        if problems:
            await self.app.push_screen_wait(
                ProblemsDialogModal("The product cannot be saved yet:", problems)
            )
            return

        try:
            if self.current_pid is None:
                product = await db.crud.create_product(self.app.state.identity, draft)
                self.notify(f"Product {product.name} created.")
            else:
                product = await db.crud.update_product(
                    self.app.state.identity, self.current_pid, draft
                )
                self.notify(f"Product {product.name} updated.")
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Saving product", e)
            return

        self.fill_form(product)
        self.reload_products()

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True, group="save")
    async def handle_delete(self) -> None:
        if self.current_pid is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                "Delete this product? Past orders keep their lines.",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return

        try:
            deleted = await db.crud.delete_product(self.app.state.identity, self.current_pid)
        except (StoreError, aiosqlite.Error) as e:
            self.report_error("Deleting product", e)
            return

        if deleted:
            self.notify("Product deleted.")
        self.clear_form()
        self.reload_products()

from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from PIL import Image

from PySide6.QtCore import Qt, QThreadPool, QTimer
from PySide6.QtGui import QAction, QImage, QKeySequence, QIcon, QPixmap
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QFileDialog, QVBoxLayout, QHBoxLayout, QLabel, QLineEdit,
    QSpinBox, QCheckBox, QPushButton, QMessageBox, QDockWidget, QComboBox, QInputDialog,
    QGroupBox, QScrollArea
)

from core.config import LEARNING_FILE, SAVES_FILE, get_storage_dir, resolve_api_key, save_settings
from core.errors import ErrorCategory, GenerationError, PuzzleError
from core.gesture import MODE_MOVE
from core.io import decode_image, encode_data_uri, save_image
from core.learning import (
    FEEDBACK_BORING,
    FEEDBACK_COMPLEX,
    FEEDBACK_DISTORTED,
    FEEDBACK_SCARY,
    FEEDBACK_TYPES,
    FEEDBACK_UNWANTED_OBJECT,
    CategoryLearning,
    LearningStore,
)
from core.prompts import CATEGORIES, STYLES, category_by_id, subject_prompt
from core.provider import DEFAULT_TIMEOUT_SECONDS, GENERATION_MODEL_NAME, GeminiImageProvider, ImageProvider
from core.puzzle_io import PuzzleStore
from core.quantize import quantize_source
from core.session import EVENT_COMPLETE, EVENT_ERROR, PuzzleSession
from core.state import (
    DIFFICULTIES,
    STAGE_COMPLETE,
    STAGE_INPUT,
    STAGE_PLAYING,
    STAGE_PREVIEW,
    STAGE_PROCESSING,
)
from ui.canvas_widget import PuzzleCanvas
from ui.palette_widget import PaletteWidget
from ui.timers import QtTimer
from ui.workers import TicketJob

FEEDBACK_LABELS = {
    FEEDBACK_COMPLEX: "Too complex",
    FEEDBACK_DISTORTED: "Looks distorted",
    FEEDBACK_SCARY: "Too scary",
    FEEDBACK_BORING: "Boring",
    FEEDBACK_UNWANTED_OBJECT: "Unwanted extra objects",
}


def pil_rgb_to_qimage(img: Image.Image) -> QImage:
    img = img.convert("RGBA")
    w, h = img.size
    data = img.tobytes("raw", "RGBA")
    qimg = QImage(data, w, h, QImage.Format_RGBA8888)
    # Important: keep a copy because Python-owned bytes may be freed
    return qimg.copy()


class MainWindow(QMainWindow):
    def __init__(self, config: dict[str, Any], logo_path: Optional[Path] = None):
        super().__init__()
        self._logo_path = logo_path
        if self._logo_path is not None and self._logo_path.exists():
            self.setWindowIcon(QIcon(str(self._logo_path)))
        self.setWindowTitle("ColorSplash")

        self.config = config
        puzzle_cfg = config["puzzle"]
        ui_cfg = config["ui"]
        self._toast_ms = int(ui_cfg["toast_ms"])

        storage = get_storage_dir(config)
        self.store = PuzzleStore(storage / SAVES_FILE)
        self.learning = LearningStore(storage / LEARNING_FILE)
        self._provider: Optional[ImageProvider] = None
        self._pool = QThreadPool.globalInstance()
        self.category_learning = CategoryLearning(self.learning)

        self.session = PuzzleSession(
            grid_size=int(puzzle_cfg["grid_size"]),
            color_count=int(puzzle_cfg["color_count"]),
            style=str(puzzle_cfg["style"]),
            difficulty=str(puzzle_cfg["difficulty"]),
            cooldown_ms=int(ui_cfg["cooldown_ms"]),
            hint_ms=int(ui_cfg["hint_ms"]),
            hint_timer=QtTimer(self),
            learning=self.category_learning,
        )
        self._unsubscribe = self.session.subscribe(self._on_session_event)

        self._act_undo: Optional[QAction] = None
        self._act_redo: Optional[QAction] = None

        # Central
        self.canvas = PuzzleCanvas(
            on_paint_cells=self.session.paint,
            on_stroke_begin=self.session.begin_stroke,
            on_stroke_end=self.session.end_stroke,
            on_mode_changed=self._on_mode_changed,
        )
        self.canvas.set_difficulty(self.session.difficulty)

        central = QWidget()
        lay = QVBoxLayout()
        lay.addWidget(self.canvas)
        central.setLayout(lay)
        self.setCentralWidget(central)

        # Menu
        self._build_menu()

        # Docks
        self._build_create_dock()
        self._build_play_dock()

        # Cooldown countdown on the Generate button
        self._cooldown_timer = QTimer(self)
        self._cooldown_timer.setInterval(250)
        self._cooldown_timer.timeout.connect(self._update_generate_button)

        self.resize(1200, 800)
        self._refresh()

    # ---------------------------
    # Menu / Actions
    # ---------------------------
    def _build_menu(self) -> None:
        key_act = QAction("Set API Key...", self)
        key_act.triggered.connect(self.set_api_key)

        open_act = QAction("Open From Gallery...", self)
        open_act.setShortcut(QKeySequence.StandardKey.Open)
        open_act.triggered.connect(self.open_from_gallery)

        delete_act = QAction("Delete From Gallery...", self)
        delete_act.triggered.connect(self.delete_from_gallery)

        save_act = QAction("Save Progress", self)
        save_act.setShortcut(QKeySequence.StandardKey.Save)
        save_act.triggered.connect(self.save_progress)

        export_act = QAction("Export Picture...", self)
        export_act.triggered.connect(self.export_picture)

        new_act = QAction("New Puzzle", self)
        new_act.setShortcut(QKeySequence.StandardKey.New)
        new_act.triggered.connect(self.new_puzzle)

        quit_act = QAction("Quit", self)
        quit_act.setShortcut(QKeySequence.StandardKey.Quit)
        quit_act.triggered.connect(self.close)

        self._act_undo = QAction("Undo", self)
        self._act_undo.setShortcut(QKeySequence.StandardKey.Undo)
        self._act_undo.triggered.connect(self.session.undo)

        self._act_redo = QAction("Redo", self)
        self._act_redo.setShortcut(QKeySequence.StandardKey.Redo)
        self._act_redo.triggered.connect(self.session.redo)

        hint_act = QAction("Hint", self)
        hint_act.setShortcut("H")
        hint_act.triggered.connect(self._hint)

        restart_act = QAction("Restart Puzzle", self)
        restart_act.triggered.connect(self.restart_puzzle)

        zoom_in_act = QAction("Zoom In", self)
        zoom_in_act.setShortcut(QKeySequence.StandardKey.ZoomIn)
        zoom_in_act.triggered.connect(self.canvas.zoom_in)

        zoom_out_act = QAction("Zoom Out", self)
        zoom_out_act.setShortcut(QKeySequence.StandardKey.ZoomOut)
        zoom_out_act.triggered.connect(self.canvas.zoom_out)

        reset_view = QAction("Reset View", self)
        reset_view.setShortcut("0")
        reset_view.triggered.connect(self.canvas.reset_view)

        move_act = QAction("Toggle Move Mode", self)
        move_act.setShortcut("M")
        move_act.triggered.connect(self.canvas.toggle_mode)

        mfile = self.menuBar().addMenu("File")
        mfile.addAction(new_act)
        mfile.addAction(open_act)
        mfile.addAction(save_act)
        mfile.addAction(delete_act)
        mfile.addAction(export_act)
        mfile.addSeparator()
        mfile.addAction(key_act)
        mfile.addSeparator()
        mfile.addAction(quit_act)

        medit = self.menuBar().addMenu("Edit")
        medit.addAction(self._act_undo)
        medit.addAction(self._act_redo)
        medit.addSeparator()
        medit.addAction(hint_act)
        medit.addAction(restart_act)

        mview = self.menuBar().addMenu("View")
        mview.addAction(zoom_in_act)
        mview.addAction(zoom_out_act)
        mview.addAction(reset_view)
        mview.addAction(move_act)

    # ---------------------------
    # Create dock
    # ---------------------------
    def _build_create_dock(self) -> None:
        dock = QDockWidget("Create", self)
        dock.setAllowedAreas(Qt.LeftDockWidgetArea | Qt.RightDockWidgetArea)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        panel = QWidget()
        v = QVBoxLayout(panel)

        if self._logo_path is not None and self._logo_path.exists():
            logo_label = QLabel()
            logo_label.setAlignment(Qt.AlignCenter)
            logo_pm = QPixmap(str(self._logo_path))
            if not logo_pm.isNull():
                logo_label.setPixmap(logo_pm.scaled(180, 64, Qt.KeepAspectRatio, Qt.SmoothTransformation))
                v.addWidget(logo_label)

        g_idea, gl_idea = self._make_group("Picture")
        self.prompt_edit = QLineEdit()
        self.prompt_edit.setPlaceholderText("What do you want to color?")
        self.prompt_edit.textEdited.connect(self._on_prompt_edited)
        self.prompt_edit.returnPressed.connect(self.generate)
        gl_idea.addWidget(self.prompt_edit)

        self.category_combo = QComboBox()
        for cat in CATEGORIES:
            self.category_combo.addItem(cat.label, userData=cat.id)
        self.category_combo.currentIndexChanged.connect(self._on_category_changed)
        self._add_labeled_row(gl_idea, "Category", self.category_combo)

        item_row = QHBoxLayout()
        self.item_combo = QComboBox()
        item_row.addWidget(self.item_combo, 1)
        self.use_item_btn = QPushButton("Use")
        self.use_item_btn.clicked.connect(self._use_category_item)
        item_row.addWidget(self.use_item_btn)
        gl_idea.addLayout(item_row)
        self._on_category_changed(0)
        v.addWidget(g_idea)

        g_opts, gl_opts = self._make_group("Options")
        self.style_combo = QComboBox()
        for style in STYLES:
            self.style_combo.addItem(style.capitalize(), userData=style)
        self.style_combo.setCurrentIndex(max(0, self.style_combo.findData(self.session.style)))
        self.style_combo.currentIndexChanged.connect(self._on_options_changed)
        self._add_labeled_row(gl_opts, "Style", self.style_combo)

        self.difficulty_combo = QComboBox()
        for diff in DIFFICULTIES:
            self.difficulty_combo.addItem(diff.capitalize(), userData=diff)
        self.difficulty_combo.setCurrentIndex(max(0, self.difficulty_combo.findData(self.session.difficulty)))
        self.difficulty_combo.currentIndexChanged.connect(self._on_options_changed)
        self._add_labeled_row(gl_opts, "Brush", self.difficulty_combo)

        self.grid_spin = QSpinBox()
        self.grid_spin.setRange(8, 96)
        self.grid_spin.setValue(self.session.grid_size)
        self.grid_spin.valueChanged.connect(self._on_options_changed)
        self._add_labeled_row(gl_opts, "Grid", self.grid_spin)

        self.colors_spin = QSpinBox()
        self.colors_spin.setRange(2, 32)
        self.colors_spin.setValue(self.session.color_count)
        self.colors_spin.valueChanged.connect(self._on_options_changed)
        self._add_labeled_row(gl_opts, "Colors", self.colors_spin)

        self.transparent_chk = QCheckBox("Transparent mode (show learning)")
        self.transparent_chk.toggled.connect(lambda *_: self._update_learning_label())
        gl_opts.addWidget(self.transparent_chk)
        self.learning_label = QLabel()
        self.learning_label.setWordWrap(True)
        gl_opts.addWidget(self.learning_label)
        v.addWidget(g_opts)

        self.generate_btn = QPushButton("Generate")
        self.generate_btn.clicked.connect(self.generate)
        v.addWidget(self.generate_btn)

        g_prev, gl_prev = self._make_group("Preview")
        self.preview_label = QLabel("No picture yet")
        self.preview_label.setAlignment(Qt.AlignCenter)
        self.preview_label.setMinimumHeight(200)
        gl_prev.addWidget(self.preview_label)
        prev_row = QHBoxLayout()
        self.confirm_btn = QPushButton("Make Puzzle")
        self.confirm_btn.clicked.connect(self.confirm_preview)
        prev_row.addWidget(self.confirm_btn)
        self.save_preview_btn = QPushButton("Save to Gallery")
        self.save_preview_btn.clicked.connect(self.save_preview)
        prev_row.addWidget(self.save_preview_btn)
        gl_prev.addLayout(prev_row)
        prev_row2 = QHBoxLayout()
        self.feedback_btn = QPushButton("Not Quite...")
        self.feedback_btn.clicked.connect(self.give_feedback)
        prev_row2.addWidget(self.feedback_btn)
        self.discard_btn = QPushButton("Discard")
        self.discard_btn.clicked.connect(lambda *_: self.session.discard())
        prev_row2.addWidget(self.discard_btn)
        gl_prev.addLayout(prev_row2)
        v.addWidget(g_prev)

        v.addStretch(1)
        scroll.setWidget(panel)
        dock.setWidget(scroll)
        self.addDockWidget(Qt.LeftDockWidgetArea, dock)

    # ---------------------------
    # Play dock
    # ---------------------------
    def _build_play_dock(self) -> None:
        dock = QDockWidget("Palette", self)
        dock.setAllowedAreas(Qt.LeftDockWidgetArea | Qt.RightDockWidgetArea)

        panel = QWidget()
        v = QVBoxLayout(panel)
        self.palette_widget = PaletteWidget(on_select=self.session.select_color)
        v.addWidget(self.palette_widget, 1)

        row1 = QHBoxLayout()
        self.hint_btn = QPushButton("Hint")
        self.hint_btn.clicked.connect(self._hint)
        row1.addWidget(self.hint_btn)
        self.undo_btn = QPushButton("Undo")
        self.undo_btn.clicked.connect(self.session.undo)
        row1.addWidget(self.undo_btn)
        self.redo_btn = QPushButton("Redo")
        self.redo_btn.clicked.connect(self.session.redo)
        row1.addWidget(self.redo_btn)
        v.addLayout(row1)

        row2 = QHBoxLayout()
        self.move_btn = QPushButton("Move")
        self.move_btn.setCheckable(True)
        self.move_btn.clicked.connect(lambda *_: self.canvas.toggle_mode())
        row2.addWidget(self.move_btn)
        self.restart_btn = QPushButton("Restart")
        self.restart_btn.clicked.connect(self.restart_puzzle)
        row2.addWidget(self.restart_btn)
        self.save_btn = QPushButton("Save")
        self.save_btn.clicked.connect(self.save_progress)
        row2.addWidget(self.save_btn)
        v.addLayout(row2)

        dock.setWidget(panel)
        self.addDockWidget(Qt.RightDockWidgetArea, dock)

    # ---------------------------
    # Generation
    # ---------------------------
    def _get_provider(self) -> Optional[ImageProvider]:
        if self._provider is None:
            key = resolve_api_key(self.config)
            if not key:
                return None
            pcfg = self.config.get("provider", {})
            self._provider = GeminiImageProvider(
                key,
                model=str(pcfg.get("model", GENERATION_MODEL_NAME)),
                timeout=int(pcfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            )
        return self._provider

    def set_api_key(self) -> None:
        key, ok = QInputDialog.getText(
            self, "API Key", "Image API key (leave empty to forget):", QLineEdit.Password
        )
        if not ok:
            return
        try:
            save_settings(self.config, api_key=key.strip() or None)
        except OSError as e:
            QMessageBox.critical(self, "Save key failed", str(e))
            return
        self._provider = None
        self._toast("API key saved." if key.strip() else "API key removed.")

    def generate(self) -> None:
        if self.session.stage not in (STAGE_INPUT, STAGE_PREVIEW):
            return
        provider = self._get_provider()
        if provider is None:
            self.set_api_key()
            provider = self._get_provider()
            if provider is None:
                return

        subject = self.prompt_edit.text().strip()
        ticket = self.session.begin_generation(subject)
        if ticket is None:
            if subject:
                self._toast("Please wait a moment before generating again.")
            return

        modifiers = self.category_learning.prompt_modifiers()
        job = TicketJob(ticket, provider.generate, self.session.prompt, self.session.style, modifiers)
        job.signals.finished.connect(self._on_generated)
        job.signals.failed.connect(self._on_generate_failed)
        self._pool.start(job)
        self._cooldown_timer.start()
        self.preview_label.setText("Drawing your picture...")
        self._update_generate_button()

    def _on_generated(self, ticket: int, result) -> None:
        self.session.finish_generation(ticket, encode_data_uri(result.image, result.mime_type), result.stats)

    def _on_generate_failed(self, ticket: int, error) -> None:
        if not isinstance(error, GenerationError):
            error = GenerationError(str(error), category=ErrorCategory.UNKNOWN)
        self.session.fail_generation(ticket, error)

    def confirm_preview(self) -> None:
        ticket = self.session.begin_processing()
        if ticket is None:
            return
        job = TicketJob(
            ticket, quantize_source, self.session.preview_image, self.session.grid_size, self.session.color_count
        )
        job.signals.finished.connect(self._on_processed)
        job.signals.failed.connect(self._on_process_failed)
        self._pool.start(job)

    def _on_processed(self, ticket: int, result) -> None:
        self.session.finish_processing(ticket, result)

    def _on_process_failed(self, ticket: int, error) -> None:
        self.session.fail_processing(ticket, error)

    def save_preview(self) -> None:
        state = self.session.save_preview_to_store(self.store)
        if state is None:
            return
        self._toast("Saved to gallery.")

    def give_feedback(self) -> None:
        if not self.category_learning.active:
            self.session.discard()
            return
        labels = [FEEDBACK_LABELS[f] for f in FEEDBACK_TYPES]
        label, ok = QInputDialog.getItem(self, "Feedback", "What was wrong with the picture?", labels, 0, False)
        if not ok:
            return
        feedback = FEEDBACK_TYPES[labels.index(label)]
        weight = 2 if self.transparent_chk.isChecked() else 1
        self.session.discard(feedback, weight)
        self._update_learning_label()
        self._toast("Thanks! The next picture will take this into account.")

    def _update_generate_button(self) -> None:
        remaining = self.session.cooldown_remaining_ms()
        if remaining > 0:
            self.generate_btn.setText(f"Generate ({(remaining + 999) // 1000}s)")
        else:
            self._cooldown_timer.stop()
            self.generate_btn.setText("Generate")
        self.generate_btn.setEnabled(
            remaining == 0 and self.session.stage in (STAGE_INPUT, STAGE_PREVIEW)
        )

    # ---------------------------
    # Gallery
    # ---------------------------
    def _pick_saved(self, title: str) -> Optional[str]:
        saved = self.store.list()
        if not saved:
            QMessageBox.information(self, title, "No saved puzzles yet.")
            return None
        labels = []
        for s in saved:
            when = datetime.fromtimestamp(s.timestamp / 1000.0).strftime("%Y-%m-%d %H:%M")
            labels.append(f"{s.prompt or 'Untitled'}  ({s.completed_pixels}/{s.total_pixels})  {when}")
        label, ok = QInputDialog.getItem(self, title, "Puzzle:", labels, 0, False)
        if not ok:
            return None
        return saved[labels.index(label)].id

    def open_from_gallery(self) -> None:
        puzzle_id = self._pick_saved("Open From Gallery")
        if puzzle_id is None:
            return
        try:
            loaded = self.session.load_from_store(self.store, puzzle_id)
        except (PuzzleError, ValueError) as e:
            QMessageBox.critical(self, "Open failed", str(e))
            return
        if loaded:
            self._sync_ui_from_session()

    def delete_from_gallery(self) -> None:
        puzzle_id = self._pick_saved("Delete From Gallery")
        if puzzle_id is None:
            return
        try:
            self.store.delete(puzzle_id)
        except OSError as e:
            QMessageBox.critical(self, "Delete failed", str(e))
            return
        self._toast("Puzzle deleted.")

    def save_progress(self) -> None:
        try:
            state = self.session.save_to_store(self.store)
        except OSError as e:
            QMessageBox.critical(self, "Save failed", str(e))
            return
        if state is not None:
            self._toast("Progress saved.")

    def export_picture(self) -> None:
        grid = self.session.grid
        if grid is None:
            QMessageBox.information(self, "Nothing to export", "Make a puzzle first.")
            return
        path, _ = QFileDialog.getSaveFileName(self, "Export Picture", "", "PNG (*.png)")
        if not path:
            return
        if not path.lower().endswith(".png"):
            path += ".png"
        try:
            save_image(path, grid.render(cell_px=16))
        except OSError as e:
            QMessageBox.critical(self, "Save failed", str(e))
            return
        self._toast(f"Exported {Path(path).name}")

    def new_puzzle(self) -> None:
        self.session.reset()
        self.prompt_edit.clear()

    def restart_puzzle(self) -> None:
        if self.session.grid is None:
            return
        answer = QMessageBox.question(self, "Restart", "Clear all colors and start over?")
        if answer == QMessageBox.Yes:
            self.session.restart()

    # ---------------------------
    # Session / UI sync
    # ---------------------------
    def _on_session_event(self, event: str) -> None:
        if event == EVENT_ERROR and self.session.error:
            QMessageBox.warning(self, "Something went wrong", self.session.error)
        self._refresh()
        if event == EVENT_COMPLETE:
            QMessageBox.information(self, "All done!", "You colored the whole picture!")

    def _on_mode_changed(self, mode: str) -> None:
        self.move_btn.setChecked(mode == MODE_MOVE)
        self._toast(f"{mode.capitalize()} mode")

    def _on_prompt_edited(self, _text: str) -> None:
        self.category_learning.category = None
        self._update_learning_label()

    def _on_category_changed(self, _index: int) -> None:
        cat = category_by_id(self.category_combo.currentData())
        self.item_combo.clear()
        if cat is None:
            return
        for item in cat.items:
            self.item_combo.addItem(item.label, userData=item.prompt)

    def _use_category_item(self) -> None:
        cat_id = self.category_combo.currentData()
        label = self.item_combo.currentText()
        base = self.item_combo.currentData()
        if not cat_id or not base:
            return
        self.category_learning.category = cat_id
        extras = self.learning.should_include_extra_objects(cat_id)
        self.prompt_edit.setText(subject_prompt(cat_id, label, base, allow_extras=extras))
        self._update_learning_label()

    def _on_options_changed(self, _=None) -> None:
        self.session.style = self.style_combo.currentData()
        self.session.difficulty = self.difficulty_combo.currentData()
        self.session.grid_size = int(self.grid_spin.value())
        self.session.color_count = int(self.colors_spin.value())
        self.canvas.set_difficulty(self.session.difficulty)

    def _sync_ui_from_session(self) -> None:
        s = self.session
        for w in (self.style_combo, self.difficulty_combo, self.grid_spin, self.colors_spin, self.prompt_edit):
            w.blockSignals(True)
        self.style_combo.setCurrentIndex(max(0, self.style_combo.findData(s.style)))
        self.difficulty_combo.setCurrentIndex(max(0, self.difficulty_combo.findData(s.difficulty)))
        self.grid_spin.setValue(s.grid_size)
        self.colors_spin.setValue(s.color_count)
        self.prompt_edit.setText(s.prompt)
        for w in (self.style_combo, self.difficulty_combo, self.grid_spin, self.colors_spin, self.prompt_edit):
            w.blockSignals(False)
        self.canvas.set_difficulty(s.difficulty)

    def _update_learning_label(self) -> None:
        if not self.transparent_chk.isChecked():
            self.learning_label.setText("")
            return
        cat = self.category_learning.category
        if cat is None:
            self.learning_label.setText("Pick a category to let the app learn from your feedback.")
            return
        lines = self.category_learning.explanations()
        self.learning_label.setText(f"[{cat}]\n" + "\n".join(lines))

    def _update_preview(self) -> None:
        s = self.session
        if s.preview_image is None:
            if s.stage == STAGE_INPUT:
                self.preview_label.setPixmap(QPixmap())
                self.preview_label.setText("No picture yet")
            return
        try:
            img = decode_image(s.preview_image)
        except PuzzleError as e:
            self.preview_label.setText(str(e))
            return
        pm = QPixmap.fromImage(pil_rgb_to_qimage(img))
        self.preview_label.setPixmap(pm.scaled(240, 240, Qt.KeepAspectRatio, Qt.SmoothTransformation))

    def _refresh(self) -> None:
        s = self.session
        stage = s.stage
        has_preview = stage == STAGE_PREVIEW and s.preview_image is not None
        playing = stage == STAGE_PLAYING
        has_grid = s.grid is not None and stage in (STAGE_PLAYING, STAGE_COMPLETE)

        for w in (self.style_combo, self.grid_spin, self.colors_spin, self.prompt_edit):
            w.setEnabled(stage in (STAGE_INPUT, STAGE_PREVIEW))
        for w in (self.confirm_btn, self.save_preview_btn, self.feedback_btn, self.discard_btn):
            w.setEnabled(has_preview)
        self.hint_btn.setEnabled(playing)
        self.restart_btn.setEnabled(has_grid)
        self.save_btn.setEnabled(has_grid)
        self.undo_btn.setEnabled(playing and s.history.can_undo)
        self.redo_btn.setEnabled(playing and s.history.can_redo)
        if self._act_undo is not None:
            self._act_undo.setEnabled(self.undo_btn.isEnabled())
        if self._act_redo is not None:
            self._act_redo.setEnabled(self.redo_btn.isEnabled())

        self._update_preview()
        self._update_generate_button()
        if stage == STAGE_PROCESSING:
            self.preview_label.setText("Making your puzzle...")

        if has_grid:
            self.canvas.set_puzzle(s.grid, s.active_color_index, s.hint_index)
            self.palette_widget.set_palette(s.palette, s.grid.completed_colors(), s.active_color_index)
        else:
            self.canvas.set_puzzle(None, 0, None)
            self.palette_widget.set_palette([], [], -1)
        self.palette_widget.set_progress(s.completed_pixels, s.total_pixels)
        self._update_status()

    def _update_status(self) -> None:
        s = self.session
        if s.grid is None:
            msg = f"Stage: {s.stage} | Style: {s.style} | Grid: {s.grid_size}x{s.grid_size} | Colors: {s.color_count}"
        else:
            pct = 100.0 * s.completed_pixels / max(1, s.total_pixels)
            msg = (
                f"Stage: {s.stage} | Color: {s.active_color_index + 1}/{len(s.palette)} | "
                f"Done: {s.completed_pixels}/{s.total_pixels} ({pct:.0f}%) | Zoom: {self.canvas.engine.viewport.zoom:.1f}x"
            )
        if s.generation_stats is not None and s.generation_stats.total_tokens:
            msg += f" | Tokens: {s.generation_stats.total_tokens}"
        self.statusBar().showMessage(msg)

    def _toast(self, text: str) -> None:
        self.statusBar().showMessage(text, self._toast_ms)

    def _hint(self) -> None:
        if self.session.hint() is None and self.session.stage == STAGE_PLAYING:
            self._toast("No cells left for this color.")

    def _make_group(self, title: str) -> tuple[QGroupBox, QVBoxLayout]:
        g = QGroupBox(title)
        gl = QVBoxLayout()
        g.setLayout(gl)
        return g, gl

    def _add_labeled_row(self, layout: QVBoxLayout, label: str, widget: Optional[QWidget]) -> None:
        row = QHBoxLayout()
        row.addWidget(QLabel(label))
        if widget is not None:
            row.addWidget(widget, 1)
        layout.addLayout(row)

    def closeEvent(self, e) -> None:
        self._cooldown_timer.stop()
        self.session.cancel_pending()
        self._unsubscribe()
        self.session.teardown()
        self.canvas.teardown()
        super().closeEvent(e)

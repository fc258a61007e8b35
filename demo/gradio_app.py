"""chip8-vm Interactive Demo.

A Gradio web interface for running CHIP-8 programs headless and looking
at the resulting screen, registers and execution trace.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Write or load assembly programs, or upload a ROM image
    - Run a fixed number of cycles
    - See the framebuffer, final registers and step-by-step trace
"""

import random
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
import numpy as np

from chip8_vm import Chip8, Chip8Error, assemble
from chip8_vm.display import DISPLAY_HEIGHT, DISPLAY_WIDTH
from chip8_vm.interfaces import CountingBeeper, NullKeys, RecordingDrawer

SCALE = 8
TRACE_LIMIT = 200


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Hex digits": """    LD V0, 0        ; digit
    LD V1, 1        ; x
    LD V2, 1        ; y
loop:
    LD F, V0        ; I = glyph for V0
    DRW V1, V2, 5
    ADD V0, 1
    ADD V1, 6
    SE V0, 10       ; second row after 9
    JP next
    LD V1, 1
    LD V2, 8
next:
    SE V0, 16
    JP loop
done:
    JP done""",

    "BCD of 137": """    LD V0, 137
    LD I, digits
    LD B, V0        ; 1, 3, 7 at digits
    LD V2, [I]      ; V0..V2 = digits
    LD V3, 20       ; x
    LD V4, 12       ; y
    LD F, V0
    DRW V3, V4, 5
    ADD V3, 6
    LD F, V1
    DRW V3, V4, 5
    ADD V3, 6
    LD F, V2
    DRW V3, V4, 5
done:
    JP done
digits:
    DB 0, 0, 0""",

    "Bouncing box": """    LD I, box
    LD V0, 0        ; x
    LD V1, 0        ; y
    LD V2, 1        ; dx
    DRW V0, V1, 4
loop:
    DRW V0, V1, 4   ; erase
    ADD V0, V2
    ADD V1, 1
    DRW V0, V1, 4   ; draw
    LD V3, 3
    LD DT, V3
wait:
    LD V3, DT
    SE V3, 0
    JP wait
    JP loop
box:
    DB 0xF0, 0x90, 0x90, 0xF0""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def frame_to_image(grid) -> np.ndarray:
    """Scale a boolean framebuffer up to an RGB image."""
    if grid is None:
        grid = [[False] * DISPLAY_WIDTH for _ in range(DISPLAY_HEIGHT)]
    pixels = np.array(grid, dtype=np.uint8) * 255
    pixels = np.repeat(np.repeat(pixels, SCALE, axis=0), SCALE, axis=1)
    return np.stack([pixels] * 3, axis=-1)


def run_program(program: str, rom_file, cycles: int, seed: int) -> tuple:
    """Run a program and return results.

    Args:
        program: Assembly source code (ignored when a ROM is uploaded)
        rom_file: Uploaded ROM path, or None
        cycles: Number of cycles to run
        seed: Seed for RND (0 when the field is empty)

    Returns:
        Tuple of (image, summary_text, trace_text, registers_text)
    """
    try:
        if rom_file:
            rom = Path(rom_file).read_bytes()
        elif program.strip():
            rom = assemble(program)
        else:
            return frame_to_image(None), "Error: No program provided", "", ""
    except (Chip8Error, OSError) as e:
        return frame_to_image(None), f"Error: {e}", "", ""

    drawer = RecordingDrawer()
    beeper = CountingBeeper()
    cpu = Chip8(NullKeys(), beeper, drawer, rng=random.Random(int(seed or 0)),
                trace=True, trace_limit=TRACE_LIMIT)

    error_msg = None
    try:
        cpu.load_rom(rom)
        cpu.run(int(cycles))
    except Chip8Error as e:
        error_msg = str(e)

    # Format summary
    summary = cpu.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Cycles: {summary['cycles']}",
        f"PC: 0x{summary['pc']:03X}",
        f"Lit pixels: {summary['lit_pixels']}",
        f"Frames drawn: {drawer.frames}",
        f"Beeps: {beeper.count}",
    ]
    if error_msg:
        summary_lines.append(f"\nStopped: {error_msg}")
    summary_text = "\n".join(summary_lines)

    # Format trace
    trace = cpu.get_trace()
    trace_lines = [
        f"EXECUTION TRACE (last {len(trace)} cycles)",
        "=" * 60,
    ]
    for entry in trace:
        line = f"[{entry.cycle:>6}] {entry.listing()}"
        pre_regs = entry.pre_state["registers"]
        post_regs = entry.post_state["registers"]
        changes = [
            f"{reg}={post_regs[reg]:02X}"
            for reg in pre_regs
            if pre_regs[reg] != post_regs[reg]
        ]
        if changes:
            line += f"   ({', '.join(changes)})"
        if entry.error:
            line += f"   ERROR: {entry.error}"
        trace_lines.append(line)
    trace_text = "\n".join(trace_lines)

    # Format registers
    reg_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for reg, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: 0x{value:02X} ({value:>3}){marker}")
    reg_lines.append("")
    reg_lines.append(f"  I:  0x{summary['i']:03X}")
    reg_lines.append(f"  SP: {summary['sp']}")
    reg_lines.append(f"  DT: {summary['delay_timer']}  ST: {summary['sound_timer']}")
    registers_text = "\n".join(reg_lines)

    return frame_to_image(drawer.last_frame), summary_text, trace_text, registers_text


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="chip8-vm Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # chip8-vm: CHIP-8 Virtual Machine

        Runs CHIP-8 programs headless for a fixed number of cycles and shows
        the final screen, registers and execution trace.

        **Cycle**: `fetch -> decode -> registry -> execute -> timers`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hex digits",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Hex digits"],
                    label="Assembly Source",
                    lines=15,
                    placeholder="Enter assembly code here..."
                )

                rom_input = gr.File(
                    label="Or upload a ROM (.ch8)",
                    type="filepath"
                )

                gr.Markdown("### Settings")

                with gr.Row():
                    cycles = gr.Slider(
                        minimum=1,
                        maximum=20000,
                        value=500,
                        step=1,
                        label="Cycles"
                    )
                    seed = gr.Number(value=0, label="RND Seed", precision=0)

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Image(label="Screen", type="numpy")

                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=10,
                        interactive=False
                    )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Mnemonic | Opcode | Description |
            |----------|--------|-------------|
            | `CLS` | `00E0` | Clear screen |
            | `RET` | `00EE` | Return from subroutine |
            | `JP addr` | `1NNN` | Jump |
            | `CALL addr` | `2NNN` | Call subroutine |
            | `SE Vx, nn` / `SNE Vx, nn` | `3XNN` / `4XNN` | Skip if equal / not equal |
            | `SE Vx, Vy` / `SNE Vx, Vy` | `5XY0` / `9XY0` | Skip if registers equal / not equal |
            | `LD Vx, nn` / `ADD Vx, nn` | `6XNN` / `7XNN` | Set / add immediate |
            | `LD OR AND XOR ADD SUB SHR SUBN SHL` | `8XY0`-`8XYE` | Register arithmetic, VF = flag |
            | `LD I, addr` | `ANNN` | Set index |
            | `JP V0, addr` | `BNNN` | Jump to V0 + addr |
            | `RND Vx, nn` | `CXNN` | Random byte AND nn |
            | `DRW Vx, Vy, n` | `DXYN` | XOR sprite, VF = collision |
            | `SKP Vx` / `SKNP Vx` | `EX9E` / `EXA1` | Skip on key state |
            | `LD Vx, DT` / `LD DT, Vx` / `LD ST, Vx` | `FX07` / `FX15` / `FX18` | Timers |
            | `LD Vx, K` | `FX0A` | Wait for key release |
            | `ADD I, Vx` / `LD F, Vx` / `LD B, Vx` | `FX1E` / `FX29` / `FX33` | Index, font, BCD |
            | `LD [I], Vx` / `LD Vx, [I]` | `FX55` / `FX65` | Store / load V0..Vx |

            **Data**: `DB byte, ...` and `DW word, ...`.
            **Labels**: `name:`; programs start at `0x200`.
            """)

        # Event handlers
        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, rom_input, cycles, seed],
            outputs=[screen_output, summary_output, trace_output, registers_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )

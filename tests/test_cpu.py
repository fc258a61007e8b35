"""Tests for the Chip8 interpreter core, one instruction at a time."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import Chip8
from chip8_vm.errors import (
    DecodeError,
    MemoryAccessError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from chip8_vm.interfaces import Drawer, NullBeeper, NullKeys
from chip8_vm.opcodes import Instruction, Opcode
from chip8_vm.registry import InstructionRegistry, get_registry


class BrokenDrawer(Drawer):
    class Failure(Exception):
        pass

    def draw(self, grid):
        raise self.Failure("lost surface")


class TestLoadRom:

    def test_rom_copied_at_0x200(self, machine):
        machine.load_rom(b"\x12\x34\x56")
        assert machine.state.memory[0x200:0x203] == b"\x12\x34\x56"
        assert machine.get_pc() == 0x200

    def test_maximum_size_fits(self, machine):
        machine.load_rom(bytes([0xAA]) * 3584)
        assert machine.state.memory[0xFFF] == 0xAA

    def test_too_large_rejected_before_mutation(self, machine):
        with pytest.raises(RomTooLargeError) as info:
            machine.load_rom(bytes([0xAA]) * 3585)
        assert info.value.size == 3585
        assert not any(machine.state.memory[0x200:])

    def test_too_large_is_value_error(self, machine):
        with pytest.raises(ValueError):
            machine.load_rom(bytes(4000))

    def test_load_rom_file(self, machine, tmp_path):
        rom = tmp_path / "prog.ch8"
        rom.write_bytes(b"\x00\xE0")
        machine.load_rom_file(rom)
        assert machine.state.memory[0x200:0x202] == b"\x00\xE0"


class TestFetch:

    def test_pc_advances_by_two(self, load):
        cpu = load(0x6001, 0x6102)
        cpu.cycle()
        assert cpu.get_pc() == 0x202
        cpu.cycle()
        assert cpu.get_pc() == 0x204
        assert cpu.get_register("V1") == 2

    def test_cycle_count(self, load):
        cpu = load(0x6001, 0x6102)
        cpu.run(2)
        assert cpu.get_cycle_count() == 2

    def test_unknown_opcode_raises(self, load):
        cpu = load(0x6005, 0x5121)
        cpu.state.delay_timer = 10
        cpu.cycle()
        with pytest.raises(DecodeError) as info:
            cpu.cycle()
        assert info.value.pc == 0x202
        assert info.value.word == 0x5121
        # no timer tick for the failed cycle
        assert cpu.state.delay_timer == 9
        assert cpu.get_cycle_count() == 1

    def test_zero_word_is_unknown(self, machine):
        with pytest.raises(DecodeError):
            machine.cycle()

    def test_fetch_past_memory(self, machine):
        machine.state.pc = 0xFFF - 1
        machine.state.write(0xFFE, b"\x12\x00")
        machine.cycle()
        assert machine.get_pc() == 0x200
        machine.state.pc = 0x1000
        with pytest.raises(MemoryAccessError):
            machine.cycle()


class TestFlowControl:

    def test_jump(self, load):
        cpu = load(0x1ABC)
        cpu.cycle()
        assert cpu.get_pc() == 0xABC

    def test_call_then_return(self, load):
        """CALL then RET lands after the CALL with the stack depth unchanged."""
        cpu = load(
            0x2206,  # 200: CALL 206
            0x6001,  # 202
            0x0000,  # 204
            0x00EE,  # 206: RET
        )
        cpu.cycle()
        assert cpu.get_pc() == 0x206
        assert cpu.state.sp == 1
        assert cpu.state.stack[0] == 0x202
        cpu.cycle()
        assert cpu.get_pc() == 0x202
        assert cpu.state.sp == 0

    def test_return_on_empty_stack(self, load):
        cpu = load(0x00EE)
        with pytest.raises(StackUnderflowError):
            cpu.cycle()

    def test_stack_overflow(self, load):
        cpu = load(0x2200)  # calls itself forever
        cpu.run(16)
        assert cpu.state.sp == 16
        with pytest.raises(StackOverflowError):
            cpu.cycle()

    def test_jump_with_offset(self, load):
        cpu = load(0x6010, 0xB300)
        cpu.run(2)
        assert cpu.get_pc() == 0x310

    def test_clear_screen(self, load, drawer):
        cpu = load(0x00E0)
        cpu.framebuffer.pixels[5][5] = True
        cpu.cycle()
        assert cpu.framebuffer.lit_pixels() == []
        assert drawer.frames == 1


class TestSkips:

    @pytest.mark.parametrize("words,skipped", [
        ((0x6042, 0x3042), True),   # SE V0, 42 equal
        ((0x6042, 0x3043), False),
        ((0x6042, 0x4043), True),   # SNE V0, 43
        ((0x6042, 0x4042), False),
        ((0x6042, 0x6142, 0x5010), True),   # SE V0, V1
        ((0x6042, 0x6143, 0x5010), False),
        ((0x6042, 0x6143, 0x9010), True),   # SNE V0, V1
        ((0x6042, 0x6142, 0x9010), False),
    ])
    def test_skip(self, load, words, skipped):
        cpu = load(*words)
        cpu.run(len(words))
        expected = 0x200 + 2 * len(words) + (2 if skipped else 0)
        assert cpu.get_pc() == expected


class TestImmediateArithmetic:

    def test_set(self, load):
        cpu = load(0x6A7F)
        cpu.cycle()
        assert cpu.get_register("VA") == 0x7F

    def test_add_wraps_without_flag(self, load):
        cpu = load(0x60FF, 0x6F07, 0x7002)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x01
        assert cpu.get_register("VF") == 0x07

    def test_random_uses_rng_and_mask(self, keys, beeper, drawer):
        cpu = Chip8(keys, beeper, drawer, rng=random.Random(99))
        cpu.load_rom(bytes([0xC3, 0x0F]))
        cpu.cycle()
        expected = random.Random(99).randrange(256) & 0x0F
        assert cpu.get_register("V3") == expected

    def test_random_mask_zero(self, load):
        cpu = load(0xC300)
        cpu.cycle()
        assert cpu.get_register("V3") == 0


class TestRegisterArithmetic:

    def test_set_register_leaves_others(self):
        """8XY0 makes Vx == Vy and touches nothing else, for every x != y."""
        for x in range(16):
            for y in range(16):
                if x == y:
                    continue
                cpu = Chip8(NullKeys(), NullBeeper(), _NoDraw())
                for r in range(16):
                    cpu.state.v[r] = 0x10 + r
                before = list(cpu.state.v)
                cpu.load_rom(bytes([0x80 | x, (y << 4)]))
                cpu.cycle()
                after = list(cpu.state.v)
                assert after[x] == before[y]
                assert [v for i, v in enumerate(after) if i != x] == \
                    [v for i, v in enumerate(before) if i != x]

    @pytest.mark.parametrize("word,expected", [
        (0x8011, 0xFC),  # OR
        (0x8012, 0x30),  # AND
        (0x8013, 0xCC),  # XOR
    ])
    def test_bitwise(self, load, word, expected):
        cpu = load(0x60F0, 0x613C, word)
        cpu.run(3)
        assert cpu.get_register("V0") == expected
        assert cpu.get_register("V1") == 0x3C

    def test_add_with_carry(self, load):
        cpu = load(0x60FF, 0x6101, 0x8014)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x00
        assert cpu.get_register("VF") == 1

    def test_add_without_carry(self, load):
        cpu = load(0x6001, 0x6101, 0x6F05, 0x8014)
        cpu.run(4)
        assert cpu.get_register("V0") == 0x02
        assert cpu.get_register("VF") == 0

    def test_sub_no_borrow(self, load):
        cpu = load(0x6005, 0x6103, 0x8015)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x02
        assert cpu.get_register("VF") == 1

    def test_sub_with_borrow(self, load):
        cpu = load(0x6003, 0x6105, 0x8015)
        cpu.run(3)
        assert cpu.get_register("V0") == 0xFE
        assert cpu.get_register("VF") == 0

    def test_sub_equal_clears_flag(self, load):
        cpu = load(0x6005, 0x6105, 0x6F01, 0x8015)
        cpu.run(4)
        assert cpu.get_register("V0") == 0
        assert cpu.get_register("VF") == 0

    def test_reverse_sub(self, load):
        cpu = load(0x6003, 0x6105, 0x8017)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x02
        assert cpu.get_register("VF") == 1

    def test_reverse_sub_borrow(self, load):
        cpu = load(0x6005, 0x6103, 0x8017)
        cpu.run(3)
        assert cpu.get_register("V0") == 0xFE
        assert cpu.get_register("VF") == 0

    def test_shift_right_copies_vy(self, load):
        cpu = load(0x60FF, 0x6105, 0x8016)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x02
        assert cpu.get_register("V1") == 0x05
        assert cpu.get_register("VF") == 1

    def test_shift_left_copies_vy(self, load):
        cpu = load(0x6000, 0x6181, 0x801E)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x02
        assert cpu.get_register("VF") == 1

    def test_shift_left_no_high_bit(self, load):
        cpu = load(0x6141, 0x6F01, 0x801E)
        cpu.run(3)
        assert cpu.get_register("V0") == 0x82
        assert cpu.get_register("VF") == 0

    def test_flag_overwrites_vf_destination(self, load):
        """With VF as destination the flag wins over the result."""
        cpu = load(0x6FFF, 0x6101, 0x8F14)
        cpu.run(3)
        assert cpu.get_register("VF") == 1


class TestIndexAndMemory:

    def test_set_index(self, load):
        cpu = load(0xA123)
        cpu.cycle()
        assert cpu.state.i == 0x123

    def test_add_index_wraps_16_bits(self, load):
        cpu = load(0x6010, 0xF01E)
        cpu.state.i = 0xFFF8
        cpu.run(2)
        assert cpu.state.i == 0x0008

    def test_font_char(self, load):
        cpu = load(0x600A, 0xF029)
        cpu.run(2)
        assert cpu.state.i == 50
        assert list(cpu.state.read(cpu.state.i, 5)) == [0xF0, 0x90, 0xF0, 0x90, 0x90]

    @pytest.mark.parametrize("value,digits", [
        (254, [2, 5, 4]),
        (137, [1, 3, 7]),
        (9, [0, 0, 9]),
        (0, [0, 0, 0]),
    ])
    def test_bcd(self, load, value, digits):
        cpu = load(0x6000 | value, 0xA300, 0xF033)
        cpu.run(3)
        assert list(cpu.state.memory[0x300:0x303]) == digits
        assert cpu.state.i == 0x300

    def test_store_registers(self, load):
        cpu = load(0x6011, 0x6122, 0x6233, 0x6344, 0xA300, 0xF255)
        cpu.run(6)
        assert list(cpu.state.memory[0x300:0x304]) == [0x11, 0x22, 0x33, 0x00]
        assert cpu.state.i == 0x300

    def test_load_registers(self, load):
        cpu = load(0xA300, 0xF265)
        cpu.state.write(0x300, [7, 8, 9, 10])
        cpu.state.v[3] = 0x55
        cpu.run(2)
        assert list(cpu.state.v[:4]) == [7, 8, 9, 0x55]
        assert cpu.state.i == 0x300

    def test_store_past_memory(self, load):
        cpu = load(0xAFFE, 0xF355)
        cpu.cycle()
        with pytest.raises(MemoryAccessError):
            cpu.cycle()


class TestDraw:

    def test_draw_font_glyph(self, load, drawer):
        cpu = load(0x6000, 0xF029, 0x6105, 0x6203, 0xD125)
        cpu.run(5)
        assert cpu.get_register("VF") == 0
        # glyph "0" top row 0xF0 at x=5, y=3
        assert drawer.last_frame[3][5:10] == [True, True, True, True, False]
        assert drawer.last_frame[4][5:9] == [True, False, False, True]

    def test_draw_twice_collides(self, load):
        cpu = load(0xA000, 0xD011, 0xD011)
        cpu.run(2)
        assert cpu.get_register("VF") == 0
        cpu.cycle()
        assert cpu.get_register("VF") == 1
        assert cpu.framebuffer.lit_pixels() == []

    def test_start_coordinates_wrap(self, load):
        """Vx=66, Vy=33 starts at column 2, row 1."""
        cpu = load(0x6042, 0x6121, 0xA000, 0xD011)
        cpu.run(4)
        assert cpu.framebuffer.lit_pixels() == [(2, 1), (3, 1), (4, 1), (5, 1)]

    def test_sprite_read_past_memory(self, load):
        cpu = load(0xAFFF, 0xD012)
        cpu.cycle()
        with pytest.raises(MemoryAccessError):
            cpu.cycle()

    def test_drawer_error_propagates_unchanged(self):
        cpu = Chip8(NullKeys(), NullBeeper(), BrokenDrawer())
        cpu.load_rom(bytes([0xD0, 0x11]))
        with pytest.raises(BrokenDrawer.Failure, match="lost surface"):
            cpu.cycle()


class TestKeys:

    def test_skip_if_key_down(self, load, keys):
        keys.down.add(0xA)
        cpu = load(0x600A, 0xE09E)
        cpu.run(2)
        assert cpu.get_pc() == 0x206

    def test_no_skip_if_key_up(self, load):
        cpu = load(0x600A, 0xE09E)
        cpu.run(2)
        assert cpu.get_pc() == 0x204

    def test_skip_if_key_not_down(self, load, keys):
        cpu = load(0x600A, 0xE0A1)
        cpu.run(2)
        assert cpu.get_pc() == 0x206
        keys.down.add(0xA)
        cpu.state.pc = 0x202
        cpu.cycle()
        assert cpu.get_pc() == 0x204

    def test_wait_for_key_blocks(self, load):
        cpu = load(0xF30A)
        cpu.run(5)
        assert cpu.get_pc() == 0x200
        assert cpu.get_cycle_count() == 5

    def test_wait_for_key_release(self, load, keys):
        cpu = load(0xF30A)
        cpu.cycle()
        keys.released.update({0x7, 0x4})
        cpu.cycle()
        assert cpu.get_register("V3") == 0x4
        assert cpu.get_pc() == 0x202

    def test_wait_ignores_held_keys(self, load, keys):
        keys.down.add(0x1)
        cpu = load(0xF30A)
        cpu.cycle()
        assert cpu.get_pc() == 0x200

    def test_timers_run_while_waiting(self, load):
        cpu = load(0xF30A)
        cpu.state.delay_timer = 3
        cpu.run(3)
        assert cpu.state.delay_timer == 0


class TestTimers:

    def test_set_and_read_delay(self, load):
        cpu = load(0x600A, 0xF015, 0xF107)
        cpu.run(3)
        # set to 10 in cycle 2 and ticked after it; read in cycle 3 before its tick
        assert cpu.get_register("V1") == 9
        assert cpu.state.delay_timer == 8

    def test_delay_stops_at_zero(self, load):
        cpu = load(0x1200)
        cpu.state.delay_timer = 2
        cpu.run(10)
        assert cpu.state.delay_timer == 0

    def test_sound_beeps_once(self, load, beeper):
        """Sound timer 5 over 525 cycles beeps exactly once, on 1 -> 0."""
        cpu = load(0x1200)
        cpu.state.sound_timer = 5
        cpu.run(4)
        assert beeper.count == 0
        cpu.cycle()
        assert beeper.count == 1
        assert cpu.state.sound_timer == 0
        cpu.run(520)
        assert beeper.count == 1

    def test_set_sound_timer(self, load, beeper):
        cpu = load(0x6002, 0xF018, 0x1204)
        cpu.run(2)
        assert cpu.state.sound_timer == 1
        assert beeper.count == 0
        cpu.cycle()
        assert beeper.count == 1

    def test_sound_timer_zero_never_beeps(self, load, beeper):
        cpu = load(0x6000, 0xF018, 0x1204)
        cpu.run(10)
        assert beeper.count == 0


class TestResetAndTrace:

    def test_reset(self, load, drawer):
        cpu = load(0x6042, 0x2300)
        cpu.run(2)
        cpu.reset()
        assert cpu.get_pc() == 0x200
        assert cpu.get_register("V0") == 0
        assert cpu.state.sp == 0
        assert cpu.state.memory[0x200] == 0
        assert cpu.state.memory[0] == 0xF0
        assert drawer.frames == 1

    def test_trace_disabled_by_default(self, load):
        cpu = load(0x6042)
        cpu.cycle()
        assert cpu.get_trace() == []

    def test_trace_records_cycles(self, keys, beeper, drawer):
        cpu = Chip8(keys, beeper, drawer, trace=True)
        cpu.load_rom(bytes([0x60, 0x42, 0x12, 0x00]))
        cpu.run(2)
        trace = cpu.get_trace()
        assert len(trace) == 2
        first = trace[0]
        assert first.cycle == 0
        assert first.pc == 0x200
        assert first.mnemonic == "LD V0, 0x42"
        assert first.pre_state["registers"]["V0"] == 0
        assert first.post_state["registers"]["V0"] == 0x42
        assert trace[1].post_state["pc"] == 0x200

    def test_trace_limit(self, keys, beeper, drawer):
        cpu = Chip8(keys, beeper, drawer, trace=True, trace_limit=3)
        cpu.load_rom(bytes([0x12, 0x00]))
        cpu.run(10)
        trace = cpu.get_trace()
        assert [e.cycle for e in trace] == [7, 8, 9]

    def test_trace_records_fetch_error(self, keys, beeper, drawer):
        """A fetch past the end of memory is traced like any other failure."""
        cpu = Chip8(keys, beeper, drawer, trace=True)
        cpu.load_rom(bytes([0x1F, 0xFF]))  # JP 0xFFF
        cpu.cycle()
        with pytest.raises(MemoryAccessError):
            cpu.cycle()

        entry = cpu.get_trace()[-1]
        assert entry.pc == 0xFFF
        assert entry.opcode is None
        assert entry.listing() == "0xFFF: ----"
        assert entry.post_state == entry.pre_state
        assert cpu.get_summary()["errors"] == [entry.error]
        assert cpu.get_pc() == 0xFFF

    def test_trace_listing(self, keys, beeper, drawer):
        cpu = Chip8(keys, beeper, drawer, trace=True)
        cpu.load_rom(bytes([0x60, 0x42]))
        cpu.cycle()
        assert cpu.get_trace()[0].listing() == "0x200: 6042  LD V0, 0x42"

    def test_trace_records_error(self, keys, beeper, drawer):
        cpu = Chip8(keys, beeper, drawer, trace=True)
        cpu.load_rom(bytes([0x51, 0x21]))
        with pytest.raises(DecodeError):
            cpu.cycle()
        entry = cpu.get_trace()[-1]
        assert "0x5121" in entry.error
        assert cpu.get_summary()["errors"] == [entry.error]

    def test_summary(self, load):
        cpu = load(0x6042, 0xA123)
        cpu.run(2)
        summary = cpu.get_summary()
        assert summary["cycles"] == 2
        assert summary["registers"]["V0"] == 0x42
        assert summary["i"] == 0x123
        assert summary["pc"] == 0x204


class TestRegistry:
    """Test the handler table."""

    def test_every_instruction_has_handler(self):
        registry = InstructionRegistry()
        expected = {i for i in Instruction if i is not Instruction.UNKNOWN}
        assert registry.get_valid_keys() == expected
        assert len(expected) == 34

    def test_frozen_after_init(self):
        registry = InstructionRegistry()
        assert registry.is_frozen()
        with pytest.raises(RuntimeError, match="frozen"):
            registry.register(Instruction.I00E0, lambda machine, op: None)

    def test_unknown_has_no_handler(self, machine):
        with pytest.raises(KeyError):
            machine.registry.execute(machine, Opcode(0x5121))

    def test_singleton(self, machine):
        assert get_registry() is get_registry()
        assert machine.registry is get_registry()


class _NoDraw(Drawer):
    def draw(self, grid):
        pass

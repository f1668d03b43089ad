import io

from x16periph.vera import Vera

# advances the beam by slightly more than one 800-pixel VGA line at 8 MHz
LINE_STEPS = 256.32


def set_address(vera, address, inc_index=2):
    vera.write(0x05, 0)
    vera.write(0x00, address & 0xFF)
    vera.write(0x01, (address >> 8) & 0xFF)
    vera.write(0x02, ((address >> 16) & 1) | (inc_index << 3))


def poke(vera, address, data):
    set_address(vera, address)
    for byte in data:
        vera.write(0x03, byte)


def composer_write(vera, dcsel, reg, value):
    vera.write(0x05, dcsel << 1)
    vera.write(reg, value)


def step_lines(vera, count):
    return [vera.step(8, LINE_STEPS, False) for _ in range(count)]


def test_version_string_in_high_dcsel():
    vera = Vera()
    vera.write(0x05, 63 << 1)
    assert vera.read(0x09) == ord("V")
    assert vera.read(0x0A) == 0x00
    assert vera.read(0x0B) == 0x03
    assert vera.read(0x0C) == 0x02


def test_address_registers_round_trip():
    vera = Vera()
    vera.write(0x00, 0x45)
    vera.write(0x01, 0x23)
    vera.write(0x02, 0x01 | (3 << 3))
    assert vera.address(0) == 0x12345
    assert vera.read(0x00) == 0x45
    assert vera.read(0x01) == 0x23
    assert vera.read(0x02) == 0x01 | (3 << 3)


def test_data_port_write_then_read_back():
    vera = Vera()
    poke(vera, 0x100, [0xAB, 0xCD])
    assert vera.address(0) == 0x102
    set_address(vera, 0x100)
    assert vera.read(0x03) == 0xAB
    assert vera.read(0x03) == 0xCD
    assert vera.space.read(0x101) == 0xCD


def test_debug_read_has_no_side_effects():
    vera = Vera()
    poke(vera, 0x200, [0x5A])
    set_address(vera, 0x200)
    first = vera.read(0x03, True)
    second = vera.read(0x03, True)
    assert first == second == 0x5A
    assert vera.address(0) == 0x200


def test_ctrl_register_selects_port():
    vera = Vera()
    vera.write(0x05, 0x03)
    assert vera.read(0x05) == 0x03
    vera.write(0x00, 0x77)
    assert vera.address(1) == 0x77
    assert vera.address(0) != 0x77 or vera.read(0x00) == 0x77


def test_ien_and_irq_line_high_bit():
    vera = Vera()
    vera.write(0x06, 0x85)
    assert vera.read(0x06) == 0x85
    assert vera.irq_line == 0x100


def test_reset_composer_defaults():
    vera = Vera()
    vera.write(0x05, 0x80)
    assert vera.read(0x0A) == 128
    assert vera.read(0x0B) == 128
    vera.write(0x05, 1 << 1)
    assert vera.read(0x0A) == 640 >> 2
    assert vera.read(0x0C) == 480 >> 1


def test_pcm_fifo_empty_flag_drives_irq():
    vera = Vera()
    assert vera.read(0x07) & 0x08 == 0x08
    assert vera.irq_out() is False
    vera.write(0x06, 0x08)
    assert vera.irq_out() is True


def test_vsync_interrupt_and_acknowledge():
    vera = Vera()
    vera.write(0x06, 0x01)
    step_lines(vera, 479)
    assert vera.read(0x07) & 0x01 == 0
    assert vera.irq_out() is False
    step_lines(vera, 1)
    assert vera.read(0x07) & 0x01 == 0x01
    assert vera.irq_out() is True
    vera.write(0x07, 0x01)
    assert vera.read(0x07) & 0x01 == 0
    assert vera.irq_out() is False


def test_line_interrupt():
    vera = Vera()
    vera.write(0x08, 5)
    vera.write(0x06, 0x02)
    step_lines(vera, 4)
    assert vera.irq_out() is False
    step_lines(vera, 1)
    assert vera.irq_out() is True
    assert vera.read(0x07) & 0x02 == 0x02


def test_scanline_register_tracks_beam():
    vera = Vera()
    step_lines(vera, 3)
    assert vera.read(0x08) == 3


def test_frame_completes_after_all_scan_lines():
    vera = Vera()
    results = step_lines(vera, 525)
    assert results[-1] is True
    assert not any(results[:-1])
    assert vera.read(0x08) == 0


def test_layer_registers_round_trip():
    vera = Vera()
    for k in range(7):
        vera.write(0x0D + k, 0x10 + k)
        vera.write(0x14 + k, 0x20 + k)
    assert [vera.read(0x0D + k) for k in range(7)] == [0x10 + k for k in range(7)]
    assert [vera.read(0x14 + k) for k in range(7)] == [0x20 + k for k in range(7)]


def test_layer_config_updates_properties():
    vera = Vera()
    vera.write(0x0D, 0x01)
    props = vera.layer_properties[0]
    assert props.tile_mode is True
    assert props.bits_per_pixel == 2


def test_palette_write_shows_in_rendered_line():
    vera = Vera()
    poke(vera, 0x1FA00, [0x00, 0x0F])
    assert vera.space.palette.raw()[:2] == bytes([0x00, 0x0F])
    composer_write(vera, 0, 0x09, 0x01)
    step_lines(vera, 1)
    assert vera.framebuffer[0] == 0xFF0000
    assert vera.framebuffer[639] == vera.framebuffer[0]
    assert vera.rgb_frame()[:3] == bytes([0xFF, 0x00, 0x00])


def test_border_above_vstart_uses_border_color():
    vera = Vera()
    composer_write(vera, 1, 0x0B, 10)
    composer_write(vera, 0, 0x0C, 1)
    composer_write(vera, 0, 0x09, 0x01)
    step_lines(vera, 1)
    expected = vera.space.palette.entries[1]
    assert vera.framebuffer[0] == expected
    assert expected == 0xFFFFFF


def test_activity_led_overlay():
    vera = Vera()
    vera.overlay_activity_led(0)
    assert vera.framebuffer[639] == 0
    vera.overlay_activity_led(255)
    assert vera.framebuffer[639] == 0xFF0000
    assert vera.framebuffer[3 * 640 + 632] == 0xFF0000
    assert vera.framebuffer[631] == 0
    assert vera.framebuffer[4 * 640 + 639] == 0


def test_save_layout():
    vera = Vera()
    for k in range(7):
        vera.write(0x0D + k, k + 1)
    stream = io.BytesIO()
    vera.save(stream)
    data = stream.getvalue()
    assert len(data) == 0x20000 + 256 + 512 + 14 + 1024
    assert data[:0x20000] == bytes(vera.space.vram)
    palette_start = 0x20000 + 256
    assert data[palette_start : palette_start + 512] == vera.space.palette.raw()
    layer_start = palette_start + 512
    assert data[layer_start : layer_start + 7] == bytes(range(1, 8))


def test_special_address_boundary():
    vera = Vera()
    assert vera.is_special_address(0x1F9C0) is True
    assert vera.is_special_address(0x1F9BF) is False


def test_tilemap_and_tiledata_ranges():
    vera = Vera()
    vera.write(0x0D, 0x00)
    vera.write(0x0E, 0x10)
    vera.write(0x0F, 0x04)
    map_base = vera.layer_properties[0].map_base
    tile_base = vera.layer_properties[0].tile_base
    assert map_base == 0x10 << 9
    assert tile_base == 0x04 << 9
    assert vera.is_tilemap_address(map_base) is True
    assert vera.is_tilemap_address(map_base - 1) is False
    assert vera.is_tilemap_address(map_base + (2 << 10)) is False
    assert vera.is_tiledata_address(tile_base) is True
    assert vera.is_tiledata_address(tile_base + 8 * 256) is False


def test_multiplier_accumulates_through_registers():
    vera = Vera()
    vera.write(0x05, 6 << 1)
    vera.write(0x09, 2)
    vera.write(0x0A, 0)
    vera.write(0x0B, 3)
    vera.write(0x0C, 0)
    assert vera.read(0x0A) == 0x00
    assert vera.fx.mult_accumulator == vera.fx.multiply()
    vera.read(0x09)
    assert vera.fx.mult_accumulator == 0


def test_spi_control_register_delegates():
    vera = Vera()
    vera.write(0x1F, 0x01)
    assert vera.read(0x1F) & 0x01 == 0x01
    vera.write(0x1F, 0x00)
    assert vera.read(0x1F) & 0x01 == 0


def test_pcm_rate_register_delegates():
    vera = Vera()
    vera.write(0x1C, 0x40)
    assert vera.read(0x1C) == 0x40
    assert vera.read(0x1D) == 0
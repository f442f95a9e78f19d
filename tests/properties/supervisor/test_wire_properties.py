from hypothesis import given, strategies as st

from chopup.exceptions import ControlProtocolError
from chopup.supervisor import SendInputCommand, decode_command, encode_command


@given(text=st.text())
def test_send_input_text_survives_encoding(text: str) -> None:
    line = encode_command(SendInputCommand(input=text))

    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    decoded = decode_command(line)
    assert isinstance(decoded, SendInputCommand)
    assert decoded.input == text


@given(raw=st.binary(max_size=200))
def test_decoding_arbitrary_bytes_only_raises_protocol_errors(raw: bytes) -> None:
    try:
        _ = decode_command(raw)
    except ControlProtocolError as e:
        assert len(e.raw) <= 256

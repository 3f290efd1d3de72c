"""paulstretch: Extreme time-stretch of an audio file (Paul's Extreme Sound Stretch)."""

import sys
import click
import numpy as np
from pathlib import Path
from paulstretch.core.audio import load_input, save_output
from paulstretch.core.stretch import InvalidParameters, StretchParameters, stretch_audio


_SUPPORTED_OUT = {'wav', 'flac', 'ogg'}


def _default_output(input: str, factor: float, fmt: str | None) -> str:
    if input == '-':
        stem, src_dir, ext = 'stdin', Path('.'), 'wav'
    else:
        stem, src_dir = Path(input).stem, Path(input).parent
        ext = Path(input).suffix.lstrip('.').lower()
    if fmt:
        ext = fmt
    if ext not in _SUPPORTED_OUT:
        ext = 'wav'
    return str(src_dir / f"{stem}_s{factor:g}x.{ext}")


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.version_option(None, '-V', '--version', package_name='paulstretch')
@click.argument('input')
@click.option('-o', '--output', default=None,
              help="Output file, or '-' for stdout pipe. Default: INPUT with '_s{factor}x' suffix.")
@click.option('-s', '--stretch', 'factor', default=8.0, show_default=True, type=float,
              help='Stretch factor (8.0 = eight times longer).')
@click.option('-w', '--window-size', default=0.25, show_default=True, type=float,
              help='Window size in seconds. Rounded up to a power-of-two number of samples.')
@click.option('--seed', default=None, type=int,
              help='Seed for the phase randomizer. Same seed and input give identical output.')
@click.option('--mono', is_flag=True, help='Mix down to one channel before stretching.')
@click.option('--format', 'fmt', default=None,
              type=click.Choice(sorted(_SUPPORTED_OUT), case_sensitive=False),
              help='Output format. Inferred from OUTPUT extension if omitted.')
def main(input, output, factor, window_size, seed, mono, fmt):
    """Stretch INPUT in time without changing its pitch.

    Overlapping windows of the input are analysed with an FFT, their phases
    are replaced by random values and the result is overlap-added at a wider
    spacing. Large factors turn any sound into a smooth texture.

    \b
    INPUT   Audio file (wav, flac, ogg, mp3) or '-' for stdin pipe.

    \b
    Examples:
      paulstretch song.wav
      paulstretch -s 50 -w 0.5 bell.flac -o bell_long.flac
      paulstretch --seed 1 -s 4 --mono voice.wav -o voice_slow.wav
    """
    if fmt:
        fmt = fmt.lower()

    try:
        audio = load_input(input)
    except (OSError, RuntimeError, ValueError) as e:
        raise click.ClickException(f"Could not read {input}: {e}")

    if mono:
        audio = audio.as_mono()

    params = StretchParameters(factor, window_size, audio.sample_rate, audio.channels)
    try:
        params.validate()
    except InvalidParameters as e:
        raise click.BadParameter(str(e))

    if output is None:
        output = _default_output(input, factor, fmt)

    click.echo(
        f"Loaded {audio.channels}ch audio: {audio.frames} frames ({audio.duration:.3f}s) "
        f"@ {audio.sample_rate}Hz, window {params.frame_size} samples",
        err=True,
    )

    rng = np.random.default_rng(seed)
    expected = params.output_length(audio.frames)
    with click.progressbar(length=expected, label='Stretching',
                           file=sys.stderr) as bar:
        result = stretch_audio(audio, factor, window_size, rng=rng, progress=bar.update)

    try:
        save_output(result, output, format=fmt.upper() if fmt else None)
    except (OSError, RuntimeError, ValueError) as e:
        raise click.ClickException(f"Could not write {output}: {e}")

    if output != '-':
        click.echo(
            f"Stretched ×{factor:g} ({audio.duration:.3f}s → {result.duration:.3f}s) → {output}",
            err=True,
        )

"""
utils -- CALCORR pipeline

Contains various utility functions that are re-used by multiple scripts:
directory structure, frame naming, FITS input/output and the output gate.

"""

import os

import numpy as np
from astropy.io import fits


def create_filestructure(output_dir, process, prefix="corrected"):
    # products go to {output_dir}/{prefix}/{process}, QA plots to {output_dir}/plots/{process}
    os.makedirs(f"{output_dir}/{prefix}/{process}", exist_ok=True)
    os.makedirs(f"{output_dir}/plots/{process}", exist_ok=True)


def frame_name(prefix: str, number: int, width: int = 4) -> str:
    return f"{prefix}{str(number).zfill(width)}"


def frame_path(directory, prefix, number, width, suffix, ext=".fits"):
    return f"{directory}/{frame_name(prefix, number, width)}{suffix}{ext}"


def first_existing(paths):
    """Returns the first path in `paths` that exists on disk, or None"""
    for p in paths:
        if os.path.exists(p):
            return p
    return None


def read_fits(fname):
    """
    Reads the primary HDU of a fits file.

    Returns:
        (numpy array, astropy.io.fits.Header)
    """
    with fits.open(fname) as hdul:
        data = np.array(hdul[0].data, dtype=float)
        header = hdul[0].header.copy()
    return data, header


def read_header(fname):
    with fits.open(fname) as hdul:
        return hdul[0].header.copy()


def write_fits(im, header, fname):
    # errors (unwritable destination etc.) are left to propagate
    hdr = fits.Header()
    if header is not None:
        for card in header.cards:
            if card.keyword in [
                "SIMPLE",
                "BITPIX",
                "NAXIS",
                "NAXIS1",
                "NAXIS2",
                "NAXIS3",
                "EXTEND",
            ]:
                continue
            hdr.append(card)
    hdu = fits.PrimaryHDU(data=np.asarray(im), header=hdr)
    hdul = fits.HDUList([hdu])
    hdul.writeto(fname, overwrite=True)


def should_process(output_path, clobber: bool) -> bool:
    """
    Output gate: a frame is (re)processed if overwriting was requested or its output does not exist yet
    """
    if clobber:
        return True
    return not os.path.exists(output_path)

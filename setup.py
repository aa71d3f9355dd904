
# Standard imports
import glob, os
from setuptools import setup, find_packages


# Begin setup
setup_keywords = dict()
setup_keywords['name'] = 'landsat-sr'
setup_keywords['description'] = 'Python package for Landsat 8/9 surface reflectance and aerosol retrieval'
setup_keywords['author'] = 'J. Xavier Prochaska'
setup_keywords['author_email'] = 'jxp@ucsc.edu'
setup_keywords['license'] = 'BSD'
setup_keywords['version'] = '0.1.0'
# Use README.md as long_description.
setup_keywords['long_description'] = ''
if os.path.exists('README.md'):
    with open('README.md') as readme:
        setup_keywords['long_description'] = readme.read()
setup_keywords['python_requires'] = '>=3.11'
setup_keywords['install_requires'] = [
    'numpy', 'xarray', 'h5netcdf[h5py]', 'tqdm', 'click']
setup_keywords['extras_require'] = {
    'dev': ['pytest'],
}
setup_keywords['zip_safe'] = False
setup_keywords['packages'] = find_packages(include=['landsat_sr', 'landsat_sr.*'])
setup_keywords['entry_points'] = {
    'console_scripts': ['landsat-sr = landsat_sr.cli:main'],
}
setup_keywords['tests_require'] = ['pytest']

if os.path.isdir('bin'):
    setup_keywords['scripts'] = [fname for fname in glob.glob(os.path.join('bin', '*'))
                                 if not os.path.basename(fname).endswith('.rst')]

setup(**setup_keywords)

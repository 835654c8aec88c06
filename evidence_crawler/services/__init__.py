"""
Pipeline services: fetch → extract → claims → evidence → crawl

Import the concrete modules directly (e.g. services.crawl_controller);
this package keeps heavy optional imports such as Playwright out of the
import path of the pure helpers.
"""
